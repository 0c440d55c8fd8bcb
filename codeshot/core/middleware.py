"""
中间件模块 - 全局错误处理
统一的错误响应格式: {"error": {"code", "message", "details"}}
"""
import os

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from codeshot.core.errors import BaseApplicationError
from codeshot.core.logging import get_logger

logger = get_logger(__name__)


async def application_error_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    """Map a domain error to its HTTP status and JSON body."""
    logger.warning(
        "request_failed",
        path=request.url.path,
        error_code=exc.error_code.value,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def error_handler(request: Request, exc: Exception) -> JSONResponse:
    """全局错误处理"""
    if isinstance(exc, BaseApplicationError):
        return await application_error_handler(request, exc)
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"code": "HTTP_ERROR", "message": exc.detail, "details": {}}}
        )

    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
    is_development = os.getenv("ENVIRONMENT", "development") == "development"
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": str(exc) if is_development else "Internal server error",
                "details": {"type": type(exc).__name__},
            }
        }
    )
