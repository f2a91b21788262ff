"""记忆模块：保存本次运行的对话记录和发给模型的历史消息"""

from typing import Any, Dict, List, Optional, Tuple

from .models import ConversationTurn


class Memory:
    """
    记忆模块。

    turns 只追加不修改，只在本次运行期间保存在内存中；
    messages 是发给模型的聊天历史（system + 指令 + 模型历次输出）。
    """

    def __init__(self):
        self.turns: List[ConversationTurn] = []
        self.messages: List[Dict[str, Any]] = []

    def start(
        self,
        instruction: str,
        system_prompt: Optional[str] = None,
        history_messages: Optional[List[Dict[str, Any]]] = None,
    ):
        """开始新一轮任务，清空之前的记录"""
        self.turns = []
        self.messages = []
        if system_prompt:
            self.messages.append({"role": "system", "content": system_prompt})
        self.messages.extend(history_messages or [])
        self.messages.append({"role": "user", "content": instruction})

    def record(self, turn: ConversationTurn):
        """记录一轮对话，同时把模型输出加入聊天历史"""
        self.turns.append(turn)
        self.messages.append({"role": "assistant", "content": turn.raw_text})

    def conversations(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self.turns)

    def format_history(self, last_n: int = 5) -> str:
        """格式化最近几轮的思考和动作"""
        if not self.turns:
            return "(无历史)"

        lines = []
        start = len(self.turns) - min(last_n, len(self.turns))
        for index, turn in enumerate(self.turns[start:], start=start + 1):
            actions = ", ".join(c.action_type for c in turn.commands)
            lines.append(f"Step {index}: {turn.thought or '-'} → {actions}")
        return "\n".join(lines)
