"""宿主接口：创建操作界面和 Agent，提供 run/pause/resume/stop"""

import asyncio
import logging
from typing import Callable, List, Optional

from .browser import BrowserOperator
from .config import OPERATOR_BROWSER, AgentSettings
from .core import GUIAgent
from .events import AgentEvents, EventCallback
from .model import ModelClient
from .models import AgentError, AgentEvent, ConversationTurn, ErrorKind, Status
from .operator import Operator
from .prompts import build_system_prompt

logger = logging.getLogger(__name__)


class AgentRunner:
    """
    宿主使用的入口。

    浏览器会话由 runner 持有：每次运行前销毁并重新创建，保证页面干净；
    同一时间只允许一个任务，运行中再次调用 run_agent 会被忽略。
    """

    def __init__(
        self,
        settings: Optional[AgentSettings] = None,
        model_factory: Callable[[AgentSettings], ModelClient] = ModelClient.from_settings,
    ):
        self.settings = settings or AgentSettings.from_env()
        self.model_factory = model_factory
        self.events = AgentEvents()
        self.events.subscribe(on_data=self._on_data, on_error=self._on_error)

        self.status = Status.IDLE
        self.error_message: Optional[str] = None
        self.conversations: List[ConversationTurn] = []
        self.agent: Optional[GUIAgent] = None
        self.browser: Optional[BrowserOperator] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._thinking = False

    @property
    def is_running(self) -> bool:
        return self._thinking

    def subscribe(
        self,
        on_data: Optional[EventCallback] = None,
        on_error: Optional[EventCallback] = None,
    ) -> Callable[[], None]:
        return self.events.subscribe(on_data=on_data, on_error=on_error)

    def update_settings(self, **changes) -> AgentSettings:
        self.settings = self.settings.update(**changes)
        return self.settings

    async def run_agent(self, instruction: str, **overrides) -> Optional[Status]:
        """运行一次任务，返回最终状态；已有任务运行时返回 None"""
        if self._thinking:
            logger.warning("已有任务在运行")
            return None
        if not instruction:
            raise ValueError("instruction 不能为空")

        if overrides:
            self.update_settings(**overrides)
        settings = self.settings

        self._thinking = True
        self._stop_event = asyncio.Event()
        self.error_message = None
        self.status = Status.RUNNING

        try:
            try:
                self.agent = await self._build_agent(settings)
            except Exception as e:
                # 操作界面或模型创建失败：以 Error 结束本次运行
                logger.exception("创建 Agent 失败")
                self.events.emit_error(AgentEvent(
                    status=Status.ERROR,
                    conversations=(),
                    session_id="",
                    error=AgentError(kind=ErrorKind.UNKNOWN_ERROR, message=f"{type(e).__name__}: {e}"),
                ))
                return Status.ERROR

            logger.info("开始运行 [%s]: %s", settings.operator, instruction)
            return await self.agent.run(instruction)
        finally:
            self.agent = None
            self._thinking = False

    async def _build_agent(self, settings: AgentSettings) -> GUIAgent:
        operator = await self._create_operator(settings)
        return GUIAgent(
            operator=operator,
            model=self.model_factory(settings),
            settings=settings,
            system_prompt=build_system_prompt(operator.ACTION_SPACES, settings.language),
            events=self.events,
            stop_event=self._stop_event,
        )

    async def _create_operator(self, settings: AgentSettings) -> Operator:
        if settings.operator == OPERATOR_BROWSER:
            # 每次运行都重建浏览器会话
            await self._destroy_browser()
            self.browser = BrowserOperator(
                headless=settings.headless,
                search_engine=settings.search_engine,
                start_url=settings.start_url,
                wait_seconds=settings.wait_seconds,
            )
            return self.browser

        await self._destroy_browser()
        from .desktop import DesktopOperator

        return DesktopOperator(wait_seconds=settings.wait_seconds)

    async def _destroy_browser(self):
        if self.browser is not None:
            await self.browser.close()
            self.browser = None

    def pause_agent(self):
        if self.agent:
            self.agent.pause()

    def resume_agent(self):
        if self.agent:
            self.agent.resume()

    def stop_agent(self):
        if self._stop_event is not None:
            self._stop_event.set()
        if self.agent:
            self.agent.resume()
            self.agent.stop()

    def clear_history(self):
        self.conversations = []
        self.status = Status.IDLE
        self.error_message = None

    async def shutdown(self):
        """停止任务并关闭浏览器"""
        self.stop_agent()
        await self._destroy_browser()

    def _on_data(self, event: AgentEvent):
        self.status = event.status
        self.conversations = list(event.conversations)
        logger.debug("[onData] status=%s conversations=%d", event.status.value, len(event.conversations))

    def _on_error(self, event: AgentEvent):
        self.status = Status.ERROR
        self.conversations = list(event.conversations)
        self.error_message = event.error.message if event.error else "Unknown error"
        logger.error("[onError] %s", self.error_message)
