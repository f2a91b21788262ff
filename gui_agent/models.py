"""数据模型定义"""

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


class Status(str, Enum):
    """Agent 运行状态"""
    IDLE = "idle"
    RUNNING = "running"
    PAUSE = "pause"
    END = "end"
    CALL_USER = "call_user"
    ERROR = "error"
    MAX_LOOP = "max_loop"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({Status.END, Status.CALL_USER, Status.ERROR, Status.MAX_LOOP})


class ErrorKind(str, Enum):
    """错误类型"""
    SNAPSHOT_FAILURE = "snapshot_failure"
    MODEL_INVOCATION_FAILURE = "model_invocation_failure"
    EXECUTION_FAILURE = "execution_failure"
    UNKNOWN_ACTION_TYPE = "unknown_action_type"
    UNKNOWN_ERROR = "unknown_error"


# 结束整轮任务的动作
TERMINAL_ACTIONS = frozenset({"finished", "call_user"})


@dataclass(frozen=True)
class Point:
    """模型坐标空间或屏幕像素中的一个点"""
    x: int
    y: int

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Command:
    """从模型输出解析出的单条结构化动作，解析后不可变"""
    action_type: str
    inputs: Mapping[str, Any] = field(default_factory=dict)
    thought: str = ""

    def __post_init__(self):
        if not isinstance(self.inputs, MappingProxyType):
            object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))

    @property
    def is_terminal(self) -> bool:
        return self.action_type in TERMINAL_ACTIONS

    def to_dict(self) -> Dict[str, Any]:
        inputs = {
            key: value.to_dict() if isinstance(value, Point) else value
            for key, value in self.inputs.items()
        }
        return {"action_type": self.action_type, "inputs": inputs, "thought": self.thought}


@dataclass(frozen=True)
class Snapshot:
    """
    界面快照。

    width/height 是逻辑尺寸（CSS 像素或系统逻辑点），
    图片本身是物理像素，物理尺寸 = 逻辑尺寸 × scale_factor。
    """
    image_base64: str
    scale_factor: float
    width: int
    height: int
    mime_type: str = "image/jpeg"
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.scale_factor or self.scale_factor <= 0:
            raise ValueError(f"scale_factor 必须大于 0，实际为 {self.scale_factor}")

    @property
    def physical_size(self) -> Tuple[int, int]:
        return (round(self.width * self.scale_factor), round(self.height * self.scale_factor))


@dataclass(frozen=True)
class ExecuteContext:
    """执行单条动作时需要的屏幕信息，来自最近一次快照"""
    screen_width: int
    screen_height: int
    scale_factor: float = 1.0
    factors: Tuple[int, int] = (1000, 1000)
    raw_text: str = ""

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot, factors: Tuple[int, int], raw_text: str = "") -> "ExecuteContext":
        return cls(
            screen_width=snapshot.width,
            screen_height=snapshot.height,
            scale_factor=snapshot.scale_factor,
            factors=factors,
            raw_text=raw_text,
        )


@dataclass(frozen=True)
class ExecutionResult:
    """Operator 执行结果"""
    status: Status = Status.RUNNING
    message: Optional[str] = None


@dataclass(frozen=True)
class InvocationResult:
    """一次模型调用的输出"""
    text: str
    commands: List[Command]
    elapsed_ms: float
    token_count: Optional[int] = None


@dataclass(frozen=True)
class ConversationTurn:
    """单轮对话记录，本轮动作执行完后追加，之后不再修改"""
    raw_text: str
    commands: Tuple[Command, ...]
    snapshot: Snapshot
    timing_ms: Mapping[str, float] = field(default_factory=dict)
    token_count: Optional[int] = None

    @property
    def thought(self) -> str:
        return self.commands[0].thought if self.commands else ""


@dataclass(frozen=True)
class AgentError:
    """随错误事件一起发出的错误信息"""
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class AgentEvent:
    """状态变化事件，携带截至当前的完整对话记录"""
    status: Status
    conversations: Tuple[ConversationTurn, ...]
    session_id: str
    loop_count: int = 0
    error: Optional[AgentError] = None
