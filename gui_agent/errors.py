"""异常定义"""

from .models import ErrorKind


class GUIAgentError(Exception):
    """所有 Agent 异常的基类"""

    kind = ErrorKind.UNKNOWN_ERROR


class SnapshotError(GUIAgentError):
    """截图失败"""

    kind = ErrorKind.SNAPSHOT_FAILURE


class ModelInvocationError(GUIAgentError):
    """模型调用失败：网络错误、非 2xx 响应或响应格式错误"""

    kind = ErrorKind.MODEL_INVOCATION_FAILURE


class ExecutionError(GUIAgentError):
    """单条动作执行失败，不会终止整轮任务"""

    kind = ErrorKind.EXECUTION_FAILURE
