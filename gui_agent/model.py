"""模型模块：调用视觉模型决策下一步，并解析为结构化动作"""

import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError

from .coordinates import factors_for
from .errors import ModelInvocationError
from .models import InvocationResult
from .parser import parse

logger = logging.getLogger(__name__)

NEXT_ACTION_PROMPT = "What is the next action to perform?"

_BASE64_PREFIX_RE = re.compile(r"^data:image/\w+;base64,")


def strip_base64_prefix(image_base64: str) -> str:
    """去掉 data URI 前缀，只保留 base64 内容"""
    return _BASE64_PREFIX_RE.sub("", image_base64)


class ModelClient:
    """模型模块：OpenAI 兼容接口（LM Studio、vLLM 等），附带最新截图"""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        max_tokens: int = 1024,
        version: Optional[str] = None,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.version = version

    @classmethod
    def from_settings(cls, settings) -> "ModelClient":
        client = AsyncOpenAI(base_url=settings.base_url, api_key=settings.api_key or "gui-agent")
        return cls(client, settings.model, max_tokens=settings.max_tokens, version=settings.model_version)

    def factors(self) -> Tuple[int, int]:
        return factors_for(self.version)

    def build_messages(
        self,
        history: List[Dict[str, Any]],
        image_base64: str,
        mime_type: str = "image/jpeg",
    ) -> List[Dict[str, Any]]:
        """在历史对话末尾追加一条带截图的 user 消息"""
        messages = list(history)
        messages.append({
            "role": "user",
            "content": [
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{strip_base64_prefix(image_base64)}"},
                },
                {"type": "text", "text": NEXT_ACTION_PROMPT},
            ],
        })
        return messages

    async def invoke(
        self,
        history: List[Dict[str, Any]],
        image_base64: str,
        screen_context: Optional[Dict[str, int]] = None,
        mime_type: str = "image/jpeg",
    ) -> InvocationResult:
        """
        调用模型，返回原始文本 + 解析后的动作。

        网络错误、非 2xx 响应或响应格式错误都会抛出 ModelInvocationError。
        """
        messages = self.build_messages(history, image_base64, mime_type)
        if screen_context:
            logger.debug("调用模型 %s，屏幕 %sx%s", self.model, screen_context.get("width"), screen_context.get("height"))

        start = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=0,
            )
        except OpenAIError as e:
            raise ModelInvocationError(f"模型调用失败: {e}") from e
        elapsed_ms = (time.perf_counter() - start) * 1000

        if not response.choices:
            raise ModelInvocationError("模型响应中没有 choices")
        text = response.choices[0].message.content
        if text is None:
            raise ModelInvocationError("模型响应内容为空")

        token_count = response.usage.total_tokens if response.usage else None
        logger.info("模型输出 (%.0fms): %s", elapsed_ms, text[:200])

        return InvocationResult(
            text=text,
            commands=parse(text),
            elapsed_ms=elapsed_ms,
            token_count=token_count,
        )
