import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from coffee_finder.core import exceptions as domain_exceptions

# Most specific first; StorageCorruptedError has its own handler
DOMAIN_STATUS: tuple[tuple[type[domain_exceptions.DomainError], int, str], ...] = (
    (domain_exceptions.NotFoundError, 404, "Not Found"),
    (domain_exceptions.ValidationError, 400, "Bad Request"),
    (domain_exceptions.ConflictError, 409, "Version conflict"),
    (domain_exceptions.InfrastructureError, 503, "Service Unavailable"),
)


def _detail(status_code: int, detail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return _detail(exc.status_code, exc.detail)


def _validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    # 不正な device_id や座標はここに来る
    return _detail(422, "Unprocessable Entity")


def _storage_error_handler(_: Request, exc: domain_exceptions.StorageCorruptedError) -> JSONResponse:
    structlog.get_logger(__name__).error("storage_corrupted", key=exc.key, error=str(exc))
    return _detail(500, str(exc))


def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    structlog.get_logger(__name__).error(
        "unhandled_exception", path=request.url.path, error=repr(exc)
    )
    return _detail(500, "Internal Server Error")


def _domain_error_handler(status_code: int, default_detail: str):
    def _handler(_: Request, exc: domain_exceptions.DomainError) -> JSONResponse:
        return _detail(status_code, str(exc) or default_detail)

    return _handler


def install(app) -> None:
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    for exc_type, status_code, default_detail in DOMAIN_STATUS:
        app.add_exception_handler(exc_type, _domain_error_handler(status_code, default_detail))
    app.add_exception_handler(domain_exceptions.StorageCorruptedError, _storage_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
