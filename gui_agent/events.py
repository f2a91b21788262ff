"""事件通道：把 Agent 的状态变化通知给订阅者（界面、日志等）"""

import asyncio
import logging
from typing import Callable, List, Optional

from .models import AgentEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[AgentEvent], None]


class AgentEvents:
    """
    订阅者列表 + 有界队列。

    回调同步调用，回调抛出的异常只记日志；
    队列写满时丢弃最旧的事件，Agent 不会因为订阅者而阻塞。
    """

    def __init__(self):
        self._data_callbacks: List[EventCallback] = []
        self._error_callbacks: List[EventCallback] = []
        self._queues: List[asyncio.Queue] = []

    def subscribe(
        self,
        on_data: Optional[EventCallback] = None,
        on_error: Optional[EventCallback] = None,
    ) -> Callable[[], None]:
        """注册回调，返回取消订阅的函数"""
        if on_data:
            self._data_callbacks.append(on_data)
        if on_error:
            self._error_callbacks.append(on_error)

        def unsubscribe():
            if on_data in self._data_callbacks:
                self._data_callbacks.remove(on_data)
            if on_error in self._error_callbacks:
                self._error_callbacks.remove(on_error)

        return unsubscribe

    def queue(self, maxsize: int = 100) -> asyncio.Queue:
        """返回一个接收所有事件的有界队列"""
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(q)
        return q

    def emit_data(self, event: AgentEvent):
        self._dispatch(self._data_callbacks, event)

    def emit_error(self, event: AgentEvent):
        self._dispatch(self._error_callbacks, event)

    def _dispatch(self, callbacks: List[EventCallback], event: AgentEvent):
        for callback in list(callbacks):
            try:
                callback(event)
            except Exception:
                logger.exception("事件回调出错")

        for q in self._queues:
            if q.full():
                q.get_nowait()
            q.put_nowait(event)
