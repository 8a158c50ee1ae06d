"""
API客户端模块

各服务客户端共用的HTTP基础设施
"""
from .base import (
    APIError,
    APIResponse,
    AuthenticationError,
    BaseAPIClient,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RemoteValidationError,
    RequestTimeoutError,
    ServerError,
)

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "AuthenticationError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "RemoteValidationError",
    "RequestTimeoutError",
    "ServerError",
]
