"""GUI 自动化智能体核心类：截图 → 模型 → 解析 → 执行 的主循环"""

import asyncio
import logging
import time
import uuid
from types import MappingProxyType
from typing import Any, Dict, List, Optional

from .config import AgentSettings
from .errors import GUIAgentError, ModelInvocationError
from .events import AgentEvents
from .memory import Memory
from .model import ModelClient
from .models import (
    AgentError,
    AgentEvent,
    ConversationTurn,
    ErrorKind,
    ExecuteContext,
    InvocationResult,
    Snapshot,
    Status,
)
from .operator import Operator
from .parser import format_command

logger = logging.getLogger(__name__)


class GUIAgent:
    """
    GUI 自动化智能体。

    状态：Idle → Running ⇄ Paused → {End, Error, MaxLoopReached, CallUser}
    同一时间只允许一次 run；pause/resume/stop 可以在任何时候调用，
    在下一个检查点生效，stop 会立即唤醒正在进行的等待。
    """

    def __init__(
        self,
        operator: Operator,
        model: ModelClient,
        settings: Optional[AgentSettings] = None,
        system_prompt: Optional[str] = None,
        events: Optional[AgentEvents] = None,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.operator = operator
        self.model = model
        self.settings = settings or AgentSettings()
        self.system_prompt = system_prompt
        self.events = events or AgentEvents()
        self.memory = Memory()
        self.session_id = f"gui-agent-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"

        self.status = Status.IDLE
        self.loop_count = 0
        self.snapshot_failures = 0
        self.last_error: Optional[AgentError] = None

        self._owns_stop_event = stop_event is None
        self._stop_event = stop_event or asyncio.Event()
        self._stopped = False
        self._paused = False
        self._running = False
        self._terminal_emitted = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    async def run(self, instruction: str, history_messages: Optional[List[Dict[str, Any]]] = None) -> Optional[Status]:
        """
        执行任务的主循环，返回最终状态。

        已经有任务在运行时直接拒绝，返回 None。
        """
        if self._running:
            logger.warning("Agent 正在运行，忽略新的任务: %s", instruction)
            return None

        self._running = True
        self._reset()
        self.memory.start(instruction, self.system_prompt, history_messages)
        self.status = Status.RUNNING
        logger.info("开始任务: %s (最多 %d 步)", instruction, self.settings.max_loop_count)

        try:
            await self._loop()
        except asyncio.CancelledError:
            self._finish(Status.END)
            raise
        except Exception as e:
            logger.exception("主循环出现未预期的错误")
            self._fail(ErrorKind.UNKNOWN_ERROR, str(e))
        finally:
            self._running = False

        logger.info("任务结束: %s（共 %d 步）", self.status.value, self.loop_count)
        return self.status

    def pause(self):
        self._paused = True
        logger.info("已暂停")

    def resume(self):
        self._paused = False
        logger.info("已恢复")

    def stop(self):
        self._stopped = True
        self._stop_event.set()
        logger.info("已停止")

    def _reset(self):
        self.loop_count = 0
        self.snapshot_failures = 0
        self.last_error = None
        self._stopped = False
        self._paused = False
        self._terminal_emitted = False
        if self._owns_stop_event:
            self._stop_event.clear()

    def _should_stop(self) -> bool:
        return self._stopped or self._stop_event.is_set()

    async def _loop(self):
        max_loop = self.settings.max_loop_count

        while True:
            if self._should_stop():
                self._finish(Status.END)
                return

            if self._paused:
                await self._wait_while_paused()
                if self._should_stop():
                    self._finish(Status.END)
                    return

            if self.loop_count >= max_loop:
                logger.info("达到最大步数 %d", max_loop)
                self._finish(Status.MAX_LOOP)
                return

            self.loop_count += 1
            logger.info("%s Step %d/%d %s", "=" * 20, self.loop_count, max_loop, "=" * 20)

            await self._step()
            if self._terminal_emitted:
                return

            self._emit(Status.RUNNING)
            await self._sleep(self.settings.loop_interval)
            await self._sleep(self.settings.settle_delay)

    async def _step(self):
        """单步：截图 → 调用模型 → 逐条执行 → 记录"""
        started = time.perf_counter()
        snapshot = await self._take_snapshot()
        if snapshot is None:
            return
        snapshot_ms = (time.perf_counter() - started) * 1000

        self._emit(Status.RUNNING)
        result = await self._invoke_model(snapshot)
        if result is None:
            return

        context = ExecuteContext.from_snapshot(snapshot, self.model.factors(), result.text)
        started = time.perf_counter()
        final_status = await self._run_commands(result.commands, context)
        actions_ms = (time.perf_counter() - started) * 1000

        # 本轮动作全部结束后才写入记录，记录一旦追加就不再修改
        self.memory.record(ConversationTurn(
            raw_text=result.text,
            commands=tuple(result.commands),
            snapshot=snapshot,
            timing_ms=MappingProxyType({"snapshot": snapshot_ms, "model": result.elapsed_ms, "actions": actions_ms}),
            token_count=result.token_count,
        ))
        logger.debug("最近历史:\n%s", self.memory.format_history())

        if final_status is not None:
            self._finish(final_status)

    async def _run_commands(self, commands, context: ExecuteContext) -> Optional[Status]:
        """逐条执行动作，遇到终止动作或操作界面返回终止状态时停止并返回该状态"""
        for command in commands:
            logger.info("思考: %s", command.thought)
            logger.info("动作: %s", format_command(command))

            if command.action_type == "finished":
                logger.info("✓✓✓ 任务完成 ✓✓✓")
                return Status.END
            if command.action_type == "call_user":
                logger.info("需要用户协助")
                return Status.CALL_USER
            if command.action_type == "wait":
                await self._sleep(self.settings.wait_seconds)
                continue

            try:
                execution = await self.operator.execute(command, context)
            except Exception as e:
                # 单个动作失败不终止任务
                kind = e.kind if isinstance(e, GUIAgentError) else ErrorKind.EXECUTION_FAILURE
                logger.warning("❌ 执行 %s 失败 [%s]: %s", command.action_type, kind.value, e)
                continue

            if execution is not None and execution.status.is_terminal:
                logger.info("操作界面返回终止状态: %s", execution.status.value)
                return execution.status

        return None

    async def _take_snapshot(self) -> Optional[Snapshot]:
        """截图，连续失败 snapshot_max_retries 次后进入 Error"""
        limit = self.settings.snapshot_max_retries
        while True:
            try:
                snapshot = await self.operator.snapshot()
            except Exception as e:
                self.snapshot_failures += 1
                logger.warning("截图失败 (%d/%d): %s", self.snapshot_failures, limit, e)
                if self.snapshot_failures >= limit:
                    self._fail(ErrorKind.SNAPSHOT_FAILURE, str(e))
                    return None
                continue
            self.snapshot_failures = 0
            return snapshot

    async def _invoke_model(self, snapshot: Snapshot) -> Optional[InvocationResult]:
        """调用模型，失败后按线性递增的间隔重试"""
        retries = self.settings.model_max_retries
        screen_context = {"width": snapshot.width, "height": snapshot.height}
        last_error: Optional[ModelInvocationError] = None

        for attempt in range(retries + 1):
            if attempt:
                logger.info("模型重试 %d/%d", attempt, retries)
                await self._sleep(self.settings.model_retry_backoff * attempt)
                if self._should_stop():
                    self._finish(Status.END)
                    return None
            try:
                return await self.model.invoke(
                    list(self.memory.messages),
                    snapshot.image_base64,
                    screen_context,
                    snapshot.mime_type,
                )
            except ModelInvocationError as e:
                last_error = e
                logger.warning("模型调用失败: %s", e)

        self._fail(ErrorKind.MODEL_INVOCATION_FAILURE, str(last_error))
        return None

    async def _wait_while_paused(self):
        while self._paused and not self._should_stop():
            self._emit(Status.PAUSE)
            await self._sleep(self.settings.pause_poll_interval)
        if not self._should_stop():
            self.status = Status.RUNNING

    async def _sleep(self, seconds: float):
        """可被 stop 打断的等待"""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _event(self, error: Optional[AgentError] = None) -> AgentEvent:
        return AgentEvent(
            status=self.status,
            conversations=self.memory.conversations(),
            session_id=self.session_id,
            loop_count=self.loop_count,
            error=error,
        )

    def _emit(self, status: Status):
        if self._terminal_emitted:
            return
        self.status = status
        self.events.emit_data(self._event())

    def _finish(self, status: Status):
        if self._terminal_emitted:
            return
        self._terminal_emitted = True
        self.status = status
        self.events.emit_data(self._event())

    def _fail(self, kind: ErrorKind, message: str):
        if self._terminal_emitted:
            return
        self._terminal_emitted = True
        self.status = Status.ERROR
        self.last_error = AgentError(kind=kind, message=message)
        logger.error("进入 Error 状态 [%s]: %s", kind.value, message)
        self.events.emit_error(self._event(self.last_error))
