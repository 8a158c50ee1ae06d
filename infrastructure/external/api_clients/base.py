"""
REST API客户端基类

提供通用的HTTP请求功能，包括：
- 自动重试（指数退避，遵循 ``Retry-After`` 且有上限）
- 错误分类（映射到客户端异常体系）
- 请求/响应日志（凭证脱敏）
- 认证支持与超时控制
"""
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode

logger = logging.getLogger(__name__)

_REDACTED_HEADERS = {"authorization", "idempotency-key"}


class HTTPMethod(Enum):
    """HTTP方法枚举"""
    GET = "GET"
    POST = "POST"


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        """判断请求是否失败"""
        return self.status_code >= 400

    def json(self) -> Any:
        """获取JSON响应（非JSON响应体抛出 ValueError）"""
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)


class APIError(BusinessException):
    """API错误基类"""

    default_code = PaymentCode.PROVIDER_ERROR
    kind = "APIError"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        full_details: Dict[str, Any] = {}
        if status_code is not None:
            full_details["status_code"] = status_code
        if request_id:
            full_details["request_id"] = request_id
        if details:
            full_details.update(details)
        super().__init__(
            code=self.default_code,
            message=message,
            error_type=self.kind,
            details=full_details or None,
        )
        self.status_code = status_code
        self.response = response
        self.request_id = request_id


class AuthenticationError(APIError):
    """认证错误（401/403）"""
    default_code = PaymentCode.AUTHENTICATION_ERROR
    kind = "AuthenticationError"


class RemoteValidationError(APIError):
    """请求体被服务端拒绝（400/409/422）"""
    default_code = PaymentCode.REMOTE_VALIDATION_ERROR
    kind = "ValidationError"


class NotFoundError(APIError):
    """资源未找到错误"""
    default_code = PaymentCode.NOT_FOUND
    kind = "NotFoundError"


class RateLimitError(APIError):
    """速率限制错误"""
    default_code = PaymentCode.RATE_LIMITED
    kind = "RateLimitError"


class ServerError(APIError):
    """服务器错误"""
    default_code = PaymentCode.PROVIDER_RECOVERABLE
    kind = "ServerError"


class NetworkError(APIError):
    default_code = PaymentCode.NETWORK_ERROR
    kind = "NetworkError"


class RequestTimeoutError(APIError):
    default_code = PaymentCode.TIMEOUT
    kind = "TimeoutError"


class RetryableAPIError(APIError):
    """可重试的API错误（仅在内部重试中使用，不直接抛给调用方）"""

    def __init__(self, response: APIResponse, retry_after: Optional[float] = None):
        super().__init__(
            message=f"Transient API error with status {response.status_code}",
            status_code=response.status_code,
            response=response,
            request_id=response.request_id,
        )
        self.retry_after = retry_after


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

ERROR_STATUS_MAP = {
    400: RemoteValidationError,
    401: AuthenticationError,
    403: AuthenticationError,
    404: NotFoundError,
    409: RemoteValidationError,
    422: RemoteValidationError,
    429: RateLimitError,
}

_ERROR_DETAIL_KEYS = ("field", "code", "expected", "received")


def _retry_after(response: APIResponse) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def _error_body(data: Any) -> tuple[Optional[str], Dict[str, Any]]:
    """从错误响应体中提取错误消息和字段详情

    支持 ``{"error": "..."}``、``{"error": {...}}`` 以及带 ``message``/``detail`` 的扁平结构。
    """
    if not isinstance(data, dict):
        return None, {}
    error = data.get("error")
    if isinstance(error, str):
        return error or None, {}
    body = error if isinstance(error, dict) else data
    message = body.get("message") or body.get("detail")
    details = {key: body[key] for key in _ERROR_DETAIL_KEYS if key in body}
    return (message if isinstance(message, str) and message else None), details


class BaseAPIClient:
    """
    REST API客户端基类

    提供通用的HTTP请求功能，子类基于 :meth:`_request` 实现具体的API调用
    """

    user_agent = "cryptopay-client/1.0"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        verify_ssl: bool = True,
        debug: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        初始化API客户端

        Args:
            base_url: API基础URL
            timeout: 请求超时时间（秒）
            max_retries: 最大重试次数（不含首次请求）
            retry_delay: 退避基数（秒），``Retry-After`` 最多取其 8 倍
            headers: 默认请求头
            auth_token: 认证令牌
            verify_ssl: 是否验证SSL证书
            debug: 是否开启调试模式
            transport: 自定义 httpx transport（测试、代理）
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.verify_ssl = verify_ssl
        self.debug = debug
        self._transport = transport

        # 设置默认请求头
        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if headers:
            self.default_headers.update(headers)
        # 设置认证
        if auth_token:
            self.default_headers["Authorization"] = f"Bearer {auth_token}"

        self._client: Optional[httpx.AsyncClient] = None

    @property
    async def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self):
        """关闭HTTP客户端"""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.aclose()

    def _build_url(self, endpoint: str) -> str:
        """构建完整URL"""
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _retrying(self, retryable: bool) -> AsyncRetrying:
        backoff = wait_exponential(
            multiplier=self.retry_delay,
            min=self.retry_delay,
            max=self.retry_delay * 8,
        )

        def wait(state: RetryCallState) -> float:
            delay = backoff(state)
            exc = state.outcome.exception() if state.outcome else None
            if isinstance(exc, RetryableAPIError) and exc.retry_after:
                delay = max(delay, min(exc.retry_after, self.retry_delay * 8))
            return delay

        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt((self.max_retries if retryable else 0) + 1),
            wait=wait,
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

    def _raise_for_status(self, response: APIResponse):
        """处理错误响应：按状态码抛出对应异常"""
        status_code = response.status_code
        default = ServerError if status_code >= 500 else APIError
        error_class = ERROR_STATUS_MAP.get(status_code, default)
        message, details = _error_body(response.data)
        raise error_class(
            message=message or f"API request failed with status {status_code}",
            status_code=status_code,
            response=response,
            request_id=response.request_id,
            details=details or None,
        )

    async def _send(self, method: str, url: str, **kwargs) -> APIResponse:
        client = await self.client
        started = time.perf_counter()
        response = await client.request(method, url, **kwargs)
        elapsed_ms = (time.perf_counter() - started) * 1000

        data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                data = response.json()
            except json.JSONDecodeError:
                data = None

        api_response = APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=data,
            raw_content=response.content,
            elapsed_ms=elapsed_ms,
            request_id=response.headers.get("x-request-id"),
        )
        if self.debug:
            logger.debug(
                f"API Response: {api_response.status_code}",
                extra={"elapsed_ms": elapsed_ms, "request_id": api_response.request_id},
            )

        if api_response.is_error:
            if api_response.status_code in RETRY_STATUS_CODES:
                raise RetryableAPIError(api_response, retry_after=_retry_after(api_response))
            self._raise_for_status(api_response)
        return api_response

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        headers: Optional[Dict[str, str]] = None,
        retryable: bool = True,
    ) -> APIResponse:
        """
        发送HTTP请求

        Args:
            method: HTTP方法
            endpoint: API端点（相对 ``base_url``）
            params: 查询参数
            json_data: JSON数据
            headers: 请求头
            retryable: 是否重试瞬时错误；非幂等请求需关闭

        Returns:
            APIResponse: API响应

        Raises:
            APIError: API错误
        """
        # 处理方法
        if isinstance(method, HTTPMethod):
            method = method.value
        url = self._build_url(endpoint)
        request_headers = {**self.default_headers, **(headers or {})}
        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(mode="json", by_alias=True, exclude_none=True)

        # 记录请求
        if self.debug:
            logger.debug(
                f"API Request: {method} {url}",
                extra={
                    "params": params,
                    "headers": {k: v for k, v in request_headers.items() if k.lower() not in _REDACTED_HEADERS},
                },
            )

        try:
            async for attempt in self._retrying(retryable):
                with attempt:
                    return await self._send(method, url, params=params, json=json_data, headers=request_headers)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"Request timeout after {self.timeout}s",
                details={"method": method, "endpoint": endpoint, "timeout": self.timeout},
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"Network error: {exc}",
                details={"method": method, "endpoint": endpoint},
            ) from exc
        except RetryableAPIError as exc:
            # 重试耗尽：按最终状态码抛出对应异常
            self._raise_for_status(exc.response)
        except BusinessException:
            raise
        except Exception as exc:
            logger.error(f"Unexpected error during API request: {exc}")
            raise APIError(f"Unexpected error: {exc}") from exc

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)
