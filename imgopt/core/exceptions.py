from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppError(Exception):
    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class UpstreamFetchError(Exception):
    """The original object could not be read from storage."""

    def __init__(self, key: str, reason: str = "") -> None:
        super().__init__(f"{key}: {reason}" if reason else key)
        self.key = key
        self.reason = reason


class ObjectNotFoundError(UpstreamFetchError):
    def __init__(self, key: str) -> None:
        super().__init__(key, "not found")


class TransformError(Exception):
    """Base for failures inside the transform pipeline.

    ``kind`` is a short stable identifier reported to clients in the
    ``X-Transform-Error`` header when the original bytes are served instead.
    """

    kind = "transform_error"


class DecodeError(TransformError):
    kind = "decode_error"


class EncodeError(TransformError):
    kind = "encode_error"


class UnsupportedFormatError(TransformError):
    kind = "unsupported_format"


class DimensionLimitError(TransformError):
    kind = "dimension_limit"


class TranscodeProcessError(TransformError):
    kind = "transcode_failed"

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"loc": err["loc"], "msg": err["msg"], "type": err["type"]} for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(errors)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
