"""GUI Agent 包

视觉模型驱动的自动化智能体：
- parser: 动作解析
- coordinates: 坐标换算
- browser / desktop: 两种操作界面
- model: 模型调用
- core: 主循环
- runner: 宿主接口
"""

from .config import AgentSettings
from .core import GUIAgent
from .events import AgentEvents
from .model import ModelClient
from .models import (
    AgentError,
    AgentEvent,
    Command,
    ConversationTurn,
    ErrorKind,
    ExecuteContext,
    ExecutionResult,
    Point,
    Snapshot,
    Status,
)
from .operator import Operator
from .parser import parse

__version__ = "0.1.0"

__all__ = [
    "AgentSettings",
    "GUIAgent",
    "AgentEvents",
    "ModelClient",
    "AgentError",
    "AgentEvent",
    "Command",
    "ConversationTurn",
    "ErrorKind",
    "ExecuteContext",
    "ExecutionResult",
    "Point",
    "Snapshot",
    "Status",
    "Operator",
    "parse",
]
