"""
全局异常处理 - 将客户端异常映射为统一响应格式（供 FastAPI 集成使用）
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status as http_status

from core.logging_config import get_logger
from core.response import error_response
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


_STATUS_BY_CODE = {
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    # 密钥缺失属于服务端配置问题，而非调用方错误
    BusinessCode.CONFIGURATION_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_401_UNAUTHORIZED,
    PaymentCode.PAYLOAD_MALFORMED: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.AUTHENTICATION_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    PaymentCode.TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
    PaymentCode.NETWORK_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.RATE_LIMITED: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.REMOTE_VALIDATION_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PAYMENT_FAILED: http_status.HTTP_409_CONFLICT,
    PaymentCode.REWARD_LOCKED: http_status.HTTP_409_CONFLICT,
    PaymentCode.WAIT_TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
}


def business_code_to_http_status(code: int) -> int:
    """业务码 -> HTTP 状态码映射（默认 400）"""
    return _STATUS_BY_CODE.get(code, http_status.HTTP_400_BAD_REQUEST)


def register_exception_handlers(app: FastAPI):
    """注册异常处理器，以统一响应格式返回客户端异常"""
    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        status_code = business_code_to_http_status(exc.code)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "request_rejected",
            path=request.url.path,
            error_type=exc.error_type,
            code=int(exc.code),
            status_code=status_code,
        )
        response = error_response(
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
        )
        return JSONResponse(status_code=status_code, content=response.model_dump(mode='json'))
