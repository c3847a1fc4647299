"""异常处理模块：定义带错误类别的业务异常与统一的错误响应。

错误类别（``kind``）：
- ``not_found``：路径或条目不存在；
- ``invalid_input``：缺少必填字段、路径越权等非法输入；
- ``conflict``：目标已存在且不做自动改名；
- ``io_failure``：磁盘或数据库故障。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from app.packages.filestore.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_UNAUTHORIZED,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)
from app.packages.filestore.core.logger import logger

KIND_NOT_FOUND = "not_found"
KIND_INVALID_INPUT = "invalid_input"
KIND_CONFLICT = "conflict"
KIND_IO_FAILURE = "io_failure"
KIND_UNAUTHORIZED = "unauthorized"
KIND_INTERNAL = "internal_error"

_KIND_BY_STATUS = {
    HTTP_STATUS_BAD_REQUEST: KIND_INVALID_INPUT,
    HTTP_STATUS_UNAUTHORIZED: KIND_UNAUTHORIZED,
    HTTP_STATUS_NOT_FOUND: KIND_NOT_FOUND,
    HTTP_STATUS_CONFLICT: KIND_CONFLICT,
    HTTP_STATUS_UNPROCESSABLE_ENTITY: KIND_INVALID_INPUT,
}


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    kind: str = KIND_INVALID_INPUT
    default_code: int = HTTP_STATUS_BAD_REQUEST

    def __init__(self, msg: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(status_code=code or self.default_code, detail=msg)
        self.data = data

    @property
    def msg(self) -> str:
        return str(self.detail)


class NotFoundError(AppException):
    kind = KIND_NOT_FOUND
    default_code = HTTP_STATUS_NOT_FOUND


class InvalidInputError(AppException):
    kind = KIND_INVALID_INPUT
    default_code = HTTP_STATUS_BAD_REQUEST


class ConflictError(AppException):
    kind = KIND_CONFLICT
    default_code = HTTP_STATUS_CONFLICT


class IOFailureError(AppException):
    kind = KIND_IO_FAILURE
    default_code = HTTP_STATUS_INTERNAL_SERVER_ERROR


def error_payload(msg: str, code: int, kind: str, data: Any = None) -> dict[str, Any]:
    return {"msg": msg, "data": data, "code": code, "kind": kind}


def kind_for(exc: HTTPException) -> str:
    """返回异常对应的错误类别，非业务异常按状态码推断。"""
    kind = getattr(exc, "kind", None)
    if kind:
        return kind
    return _KIND_BY_STATUS.get(exc.status_code, KIND_INTERNAL)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 ``HTTPException`` 转换为统一响应格式。"""
    payload = error_payload(str(exc.detail), exc.status_code, kind_for(exc), getattr(exc, "data", None))
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    payload = error_payload("服务器内部错误", HTTP_STATUS_INTERNAL_SERVER_ERROR, KIND_INTERNAL)
    return JSONResponse(status_code=HTTP_STATUS_INTERNAL_SERVER_ERROR, content=payload)
