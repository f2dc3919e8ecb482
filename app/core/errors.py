import logging
import traceback

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base for every error surfaced to API clients.

    ``message`` is the Persian text shown to users, ``message_en`` its
    English counterpart.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "internal_error"

    def __init__(self, message: str, message_en: str | None = None):
        super().__init__(message_en or message)
        self.message = message
        self.message_en = message_en or message

    @property
    def headers(self) -> dict[str, str] | None:
        return None


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "bad_request"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "authentication_error"

    @property
    def headers(self) -> dict[str, str] | None:
        return {"WWW-Authenticate": "Bearer"}


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "authorization_error"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    kind = "rate_limited"

    def __init__(self, retry_after: int):
        super().__init__("تعداد درخواست‌ها بیش از حد مجاز است", "Too many requests")
        self.retry_after = retry_after

    @property
    def headers(self) -> dict[str, str] | None:
        return {"Retry-After": str(self.retry_after)}


class InternalServerError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "internal_error"

    def __init__(
        self,
        message: str = "خطایی در سرور رخ داده است",
        message_en: str | None = "An error occurred on the server",
        retryable: bool = False,
    ):
        super().__init__(message, message_en)
        self.retryable = retryable


def _payload(exc: AppError, debug: bool) -> dict:
    body = {
        "status": "error",
        "kind": exc.kind,
        "error": exc.message,
        "error_en": exc.message_en,
    }
    if exc.status_code >= 500 and not debug:
        body["message"] = "لطفا با پشتیبانی تماس بگیرید"
        body["message_en"] = "Please contact support"
    else:
        body["message"] = exc.message
        body["message_en"] = exc.message_en
    if isinstance(exc, InternalServerError):
        body["retryable"] = exc.retryable
    if debug:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    """Render every error as the bilingual envelope clients expect."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        log_extra = {
            "kind": exc.kind,
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
        }
        if exc.status_code >= 500:
            sentry_sdk.capture_exception(exc)
            logger.error("Server error: %s", exc.message_en, exc_info=exc, extra=log_extra)
        else:
            logger.warning("Client error: %s", exc.message_en, extra=log_extra)
        return JSONResponse(
            status_code=exc.status_code,
            content=_payload(exc, debug),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        logger.warning(
            "Validation failed",
            extra={"path": request.url.path, "method": request.method, "errors": errors},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "status": "error",
                "kind": "validation_error",
                "error": "اطلاعات ورودی نامعتبر است",
                "error_en": "Invalid input data",
                "message": "اطلاعات ورودی نامعتبر است",
                "message_en": "Invalid input data",
                "validation_errors": errors,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message, message_en = "مسیر مورد نظر یافت نشد", "Route not found"
        else:
            message, message_en = str(exc.detail), str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "kind": "http_error",
                "error": message,
                "error_en": message_en,
                "message": message,
                "message_en": message_en,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        return await handle_app_error(request, _wrap_unexpected(exc))


def _wrap_unexpected(exc: Exception) -> InternalServerError:
    wrapped = InternalServerError()
    wrapped.__cause__ = exc
    wrapped.__traceback__ = exc.__traceback__
    return wrapped
