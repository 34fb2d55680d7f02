"""
Error translation

Every exception that escapes a handler, and every rejection issued by the
authentication middleware, is turned into a JSON body of the form
``{"success": false, "message": "..."}``. The status code is chosen by
exception class name, walking the MRO so library subclasses inherit the
mapping of their base (e.g. ``InvalidSignatureError`` -> ``InvalidTokenError``).
"""
import logging
from typing import Callable, Dict, Tuple, Union

import jwt
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    default_message = "Application error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFoundError(AppError):
    default_message = "Resource not found"


class BadRequestError(AppError):
    default_message = "Bad request"


class UnauthorizedError(AppError):
    default_message = "Unauthorized"


def _validation_message(exc) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts) or "Validation error"


def _own_message(exc) -> str:
    return getattr(exc, "message", None) or str(exc)


Message = Union[str, Callable[[Exception], str]]

ERROR_RESPONSES: Dict[str, Tuple[int, Message]] = {
    "UnauthorizedError": (401, "Unauthorized"),
    "ExpiredSignatureError": (401, "Token expired"),
    "InvalidTokenError": (401, "Invalid token"),
    "NotFoundError": (404, _own_message),
    "BadRequestError": (400, _own_message),
    "RequestValidationError": (400, _validation_message),
    "ValidationError": (400, _validation_message),
    "InvalidId": (400, "Invalid ID format"),
    "DuplicateKeyError": (400, "Duplicate key error"),
    "JSONDecodeError": (400, "Invalid JSON format"),
}


def classify(exc: Exception) -> Tuple[int, str]:
    """Return the (status, message) pair for an exception."""
    if isinstance(exc, StarletteHTTPException):
        return exc.status_code, str(exc.detail)
    for cls in type(exc).__mro__:
        entry = ERROR_RESPONSES.get(cls.__name__)
        if entry:
            status, message = entry
            return status, message(exc) if callable(message) else message
    return 500, "Internal server error"


def error_response(exc: Exception, log: bool = True) -> JSONResponse:
    status, message = classify(exc)
    if log and status >= 500:
        logger.error("Unhandled error: %r", exc, exc_info=exc)
    return JSONResponse(status_code=status, content={"success": False, "message": message})


async def translate_error(request: Request, exc: Exception) -> JSONResponse:
    return error_response(exc)


async def translate_unhandled(request: Request, exc: Exception) -> JSONResponse:
    # Starlette re-raises after this handler, so the server logs the traceback
    return error_response(exc, log=False)


def register_error_handlers(app: FastAPI) -> None:
    for exc_class in (
        StarletteHTTPException,
        RequestValidationError,
        ValidationError,
        InvalidId,
        DuplicateKeyError,
        jwt.PyJWTError,
        ValueError,
        AppError,
    ):
        app.add_exception_handler(exc_class, translate_error)
    app.add_exception_handler(Exception, translate_unhandled)
