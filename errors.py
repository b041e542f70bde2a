import logging
import re
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    status_code = 500

    def __init__(self, detail: str, errors: Optional[List[str]] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.errors = errors


class BadRequest(AppError):
    status_code = 400


class ValidationFailed(BadRequest):
    def __init__(self, errors: List[str], detail: str = "Validation failed"):
        super().__init__(detail, errors=errors)

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        return cls(format_errors(exc.errors()))


class DuplicateKey(BadRequest):
    def __init__(self, field: str):
        self.field = field
        label = field.replace("_", " ").capitalize()
        super().__init__(f"{label} already exists")


class InvalidQuery(BadRequest):
    pass


class Unauthorized(AppError):
    status_code = 401

    def __init__(self, detail: str):
        super().__init__(detail)
        self.headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


def format_errors(errors) -> List[str]:
    messages = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return messages


_DUP_INDEX = re.compile(r"index: (?P<field>\w+?)_-?1")


def duplicate_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_value = details.get("keyValue") or {}
    if key_value:
        return next(iter(key_value))
    match = _DUP_INDEX.search(str(exc))
    return match.group("field") if match else "value"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        body = {"detail": exc.detail}
        if exc.errors:
            body["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Validation failed", "errors": format_errors(exc.errors())},
        )

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        err = DuplicateKey(duplicate_field(exc))
        return JSONResponse(status_code=err.status_code, content={"detail": err.detail})

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Server error", "error": str(exc)})
