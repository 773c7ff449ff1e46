# backend/errors.py
import logging
from typing import Any, List, Optional
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

class ApiError(HTTPException):
    """HTTPException that carries a stable machine-readable code."""
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None,
                 errors: Optional[List[Any]] = None, headers: Optional[dict] = None):
        if code: self.code = code
        self.errors = errors
        super().__init__(status_code=self.status_code_default, detail=message or self.code, headers=headers)

class ValidationFailed(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"

class InvalidId(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "INVALID_ID"

class ReferenceNotFound(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    code = "REFERENCE_NOT_FOUND"

class AuthFailed(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_FAILED"

class Unauthorized(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})

class InvalidRefreshToken(ApiError):
    # Deliberately one outcome for unknown, expired, revoked, reused and foreign tokens.
    status_code_default = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_REFRESH"

class Forbidden(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"

class NotFound(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

class DatabaseError(ApiError):
    code = "DB_ERROR"

class SyncError(ApiError):
    code = "SYNC_ERROR"

class InternalError(ApiError):
    code = "INTERNAL_ERROR"

_STATUS_CODES = {400: "BAD_REQUEST", 401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}

def _body(code: str, message: str, errors: Optional[List[Any]] = None) -> dict:
    body = {"code": code, "message": message}
    if errors is not None: body["errors"] = errors
    return body

def _render(exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_body(exc.code, str(exc.detail), exc.errors),
                        headers=exc.headers)

def register_error_handlers(app: FastAPI, expose_internal: bool = False) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return _render(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
        if any(e["loc"] and e["loc"][0] == "path" for e in errors):
            return _render(InvalidId("Invalid id"))
        return _render(ValidationFailed("Request validation failed", errors=errors))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(status_code=exc.status_code, content=_body(code, str(exc.detail)),
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("request:unhandled %s %s", request.method, request.url.path, exc_info=exc)
        return _render(InternalError(str(exc) if expose_internal else "Internal Error"))
