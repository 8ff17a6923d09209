"""
Error taxonomy for the AudioShare backend.

Every error raised on purpose by the service derives from AudioShareError and is
rendered by a single exception handler as `{"error": "<message>"}` with the
status code carried by the class.
"""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response


class AudioShareError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Internal server error."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def headers(self) -> Optional[Dict[str, str]]:
        return None


class BadRequestError(AudioShareError):
    status_code = 400
    default_message = "Bad request."


class NotFoundError(AudioShareError):
    status_code = 404
    default_message = "Not found."


class ConflictError(AudioShareError):
    """A record write collided with an existing id or filename."""

    status_code = 409
    default_message = "Conflicting record."

    def __init__(self, field: str, message: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message or f"A record with the same {field} already exists.")


class PayloadTooLargeError(AudioShareError):
    status_code = 413
    default_message = "File too large."


class UnsupportedMediaTypeError(AudioShareError):
    status_code = 415
    default_message = "Unsupported media type."


class RangeNotSatisfiableError(AudioShareError):
    """Requested byte range lies outside the stored payload."""

    status_code = 416
    default_message = "Range not satisfiable."

    def __init__(self, size: int, message: Optional[str] = None) -> None:
        self.size = size
        super().__init__(message)

    def headers(self) -> Optional[Dict[str, str]]:
        return {"Content-Range": f"bytes */{self.size}"}


class InternalError(AudioShareError):
    status_code = 500
    default_message = "Internal server error."


async def _audioshare_error_handler(request: Request, exc: AudioShareError) -> Response:
    if isinstance(exc, RangeNotSatisfiableError):
        # 416 carries no body, only the framing header.
        return Response(status_code=exc.status_code, headers=exc.headers())
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=exc.headers(),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("query", "path", "body"))
    message = first.get("msg", "Invalid request.")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content={"error": message})


# PUBLIC_INTERFACE
def install_exception_handlers(app: FastAPI) -> None:
    """Register the JSON error handlers on the application."""
    app.add_exception_handler(AudioShareError, _audioshare_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
