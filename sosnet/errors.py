"""
SOSNet - Error Handling
Every error leaves the API as {"success": false, "message": ..., "code"?, "error"?}
"""
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class APIError(HTTPException):
    """HTTPException carrying a machine-readable error code"""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        headers: Optional[dict] = None
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = code


def error_response(status: int, message: str, code: str = None, error: str = None) -> JSONResponse:
    content = {"success": False, "message": message}
    if code:
        content["code"] = code
    if error:
        content["error"] = error
    return JSONResponse(status_code=status, content=content)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = error_response(
        exc.status_code,
        str(exc.detail),
        code=getattr(exc, "code", None)
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in errors]
    message = "Invalid or missing fields: " + ", ".join(f for f in fields if f) if fields else "Invalid request"
    return error_response(400, message, code="VALIDATION_ERROR", error=str(errors[0].get("msg")) if errors else None)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "Internal server error", error=str(exc))


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
