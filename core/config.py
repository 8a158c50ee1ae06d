"""
客户端配置 - 基于 pydantic-settings v2，支持嵌套环境变量

配置对象构建后不可变，显式传给需要的组件；不提供模块级全局实例。

环境变量统一使用 ``CRYPTOPAY__`` 前缀，例如
``CRYPTOPAY__API_KEY`` 或 ``CRYPTOPAY__WAIT__POLL_INTERVAL``。
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.common.exceptions import ConfigurationException


class Environment(str, Enum):
    PRODUCTION = "production"
    SANDBOX = "sandbox"


DEFAULT_BASE_URLS = {
    Environment.PRODUCTION: "https://api.cryptopay.io/v1",
    Environment.SANDBOX: "https://sandbox.cryptopay.io/v1",
}

API_KEY_PREFIXES = {
    Environment.PRODUCTION: "cp_live_",
    Environment.SANDBOX: "cp_test_",
}


class RetrySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max: int = Field(default=2, ge=0)  # 最大重试次数（不含首次请求）
    base_backoff: float = Field(default=0.2, gt=0)


class WebhookSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    signature_header: str = "X-CryptoPay-Signature"
    tolerance_seconds: Optional[int] = Field(default=None, gt=0)  # 重放窗口（秒），默认关闭


class WaitSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    timeout: float = Field(default=300.0, gt=0)
    poll_interval: float = Field(default=5.0, gt=0)
    accept_partial: bool = False  # 部分支付即视为等待结束


class ClientSettings(BaseSettings):
    """单个客户端实例的配置"""

    # 凭证
    api_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    # 环境与连接
    environment: Environment = Environment.PRODUCTION
    base_url: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    debug: bool = False

    # 分组配置：重试 / Webhook / 轮询等待
    retry: RetrySettings = Field(default_factory=RetrySettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    wait: WaitSettings = Field(default_factory=WaitSettings)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_prefix="CRYPTOPAY__",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    @field_validator("api_key", "webhook_secret", "base_url", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        """空白字符串视为未配置。"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or DEFAULT_BASE_URLS[self.environment]).rstrip("/")

    @property
    def expected_key_prefix(self) -> str:
        return API_KEY_PREFIXES[self.environment]

    def require_api_key(self) -> str:
        """返回 API Key；未配置时抛出 ConfigurationException。"""
        if not self.api_key:
            raise ConfigurationException(
                "API key is not configured (set CRYPTOPAY__API_KEY)",
                setting="api_key",
            )
        return self.api_key
