"""Operator 能力接口：浏览器与桌面两种操作界面都实现同样的契约"""

from typing import ClassVar, List, Protocol, runtime_checkable

from .models import Command, ExecuteContext, ExecutionResult, Snapshot


@runtime_checkable
class Operator(Protocol):
    """
    操作界面。

    snapshot() 可以重复调用且不改变界面内容；
    execute() 执行一条动作，未知动作只记日志，不中断循环。
    """

    ACTION_SPACES: ClassVar[List[str]]

    async def snapshot(self) -> Snapshot: ...

    async def execute(self, command: Command, context: ExecuteContext) -> ExecutionResult: ...
