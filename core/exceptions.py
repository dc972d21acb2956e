"""
全局异常处理器

Every error leaves the gateway as a flat JSON body: proxy validation and
backend rejections keep their status, routing 405s and request validation get
fixed shapes, and anything unexpected becomes a 500 carrying the technical
error for the storefront console.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
import uuid
from starlette import status as http_status

from .response import proxy_error_body
from shared.codes import BusinessCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from core.i18n import t


def _business_code_to_http_status(code: int) -> int:
    """业务码对应的 HTTP 状态；上游错误一般携带自己的状态码，不走这里"""
    mapping = {
        BusinessCode.PARAM_MISSING: http_status.HTTP_400_BAD_REQUEST,
        BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
        BusinessCode.UPSTREAM_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    }
    try:
        return mapping.get(BusinessCode(code), http_status.HTTP_400_BAD_REQUEST)
    except ValueError:
        return http_status.HTTP_400_BAD_REQUEST


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """

    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常"""
        fmt_params = getattr(exc, "format_params", None)
        params = fmt_params if isinstance(fmt_params, dict) else {}
        message = t(exc.message_key, **params) if exc.message_key else exc.message
        status_code = exc.status_code or _business_code_to_http_status(exc.code)
        logger.warning(
            "business_exception",
            request_id=_request_id(request),
            error_type=exc.error_type,
            status_code=status_code,
            error=exc.message,
        )
        body = proxy_error_body(
            message,
            with_success_flag=exc.with_success_flag,
            technical_error=exc.technical_error,
        )
        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=status_code, content=body, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """请求体或查询参数校验失败：400，只报告第一个字段"""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])
        logger.info(
            "request_validation_failed",
            request_id=_request_id(request),
            field=field,
            reason=first_error.get("msg"),
        )
        message = t("Invalid request: {reason}", reason=first_error.get("msg", "unknown"))
        return JSONResponse(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            content={"error": message, "field": field or None},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """处理HTTP异常（含路由层的 404/405）"""
        if exc.status_code == 405:
            message = t("Method not allowed")
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": message},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """兜底：500，technicalError 携带原始异常信息"""
        request_id = _request_id(request)
        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=proxy_error_body(
                t("Internal server error"),
                with_success_flag=True,
                technical_error=str(exc),
            ),
        )
