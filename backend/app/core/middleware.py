import time
import logging
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.errors import DomainError

# === 结构化日志配置 ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("paperdesk")


def domain_error_response(exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": exc.code},
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    # 中文注释: 业务异常属于预期分支，只记 info，不打印堆栈
    logger.info(
        f"Domain error: {exc.code} Method: {request.method} Path: {request.url.path} Detail: {exc.detail}"
    )
    return domain_error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    统一异常捕获中间件
    - 记录每个请求的 method/path/status/耗时
    - 未处理异常统一返回 {"detail", "type": "server_error"}，并记录完整堆栈
    """
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(f"Method: {request.method} Path: {request.url.path} Status: {response.status_code} Time: {process_time:.4f}s")
            return response
        except DomainError as exc:
            return domain_error_response(exc)
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "type": "http_exception"}
            )
        except Exception as e:
            logger.error(f"Unhandled Exception: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "type": "server_error"}
            )
