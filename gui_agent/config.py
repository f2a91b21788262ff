"""配置：从 .env / 环境变量读取模型地址、密钥等，其余参数使用默认值"""

import os
from dataclasses import dataclass, fields, replace
from typing import Optional

from dotenv import load_dotenv

OPERATOR_BROWSER = "browser"
OPERATOR_COMPUTER = "computer"


@dataclass(frozen=True)
class AgentSettings:
    """Agent 运行配置"""

    # 模型服务
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "lm-studio"
    model: str = ""
    model_version: str = "v1.5"
    max_tokens: int = 1024

    # 操作界面：browser | computer
    operator: str = OPERATOR_BROWSER
    language: str = "en"
    search_engine: str = "google"
    start_url: Optional[str] = None
    headless: bool = False

    # 主循环
    max_loop_count: int = 25
    loop_interval: float = 0.0
    settle_delay: float = 0.5
    wait_seconds: float = 5.0
    pause_poll_interval: float = 0.5

    # 重试
    snapshot_max_retries: int = 3
    model_max_retries: int = 3
    model_retry_backoff: float = 1.0

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **overrides) -> "AgentSettings":
        """加载 .env 后读取环境变量，overrides 优先级最高"""
        load_dotenv(dotenv_path)
        defaults = cls()

        values = {
            "base_url": os.getenv("VLM_BASE_URL", defaults.base_url),
            "api_key": os.getenv("VLM_API_KEY") or os.getenv("OPENAI_API_KEY") or defaults.api_key,
            "model": os.getenv("VLM_MODEL_NAME") or os.getenv("OPENAI_MODEL") or defaults.model,
            "operator": os.getenv("GUI_AGENT_OPERATOR", defaults.operator),
            "language": os.getenv("GUI_AGENT_LANGUAGE", defaults.language),
            "search_engine": os.getenv("GUI_AGENT_SEARCH_ENGINE", defaults.search_engine),
            "max_loop_count": int(os.getenv("GUI_AGENT_MAX_LOOP", defaults.max_loop_count)),
            "headless": os.getenv("GUI_AGENT_HEADLESS", "").lower() in ("1", "true", "yes"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values).validate()

    def update(self, **changes) -> "AgentSettings":
        """返回更新后的新配置，忽略未知字段"""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in changes.items() if k in known}).validate()

    def validate(self) -> "AgentSettings":
        if self.operator not in (OPERATOR_BROWSER, OPERATOR_COMPUTER):
            raise ValueError(f"未知的 operator: {self.operator}")
        if self.max_loop_count < 1:
            raise ValueError("max_loop_count 必须大于 0")
        if self.snapshot_max_retries < 1:
            raise ValueError("snapshot_max_retries 必须大于 0")
        if self.model_max_retries < 0:
            raise ValueError("model_max_retries 不能为负数")
        return self
