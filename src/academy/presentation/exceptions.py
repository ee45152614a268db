import logging
from collections.abc import Callable
from functools import partial

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from starlette.requests import Request

from academy.application.exceptions.base import (
    ApplicationError,
    ConflictError,
    EntityNotFoundError,
    MissingRequiredFieldError,
    OperationFailedError,
    ValidationError,
)
from academy.domain.common.exceptions import AppError, InvalidChoiceError

logger = logging.getLogger(__name__)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(
        EntityNotFoundError,
        error_handler(404),
    )
    app.add_exception_handler(
        MissingRequiredFieldError,
        error_handler(422),
    )
    app.add_exception_handler(
        ValidationError,
        validation_error_handler,
    )
    app.add_exception_handler(
        InvalidChoiceError,
        error_handler(422),
    )
    app.add_exception_handler(
        ConflictError,
        error_handler(409),
    )
    app.add_exception_handler(
        OperationFailedError,
        error_handler(502),
    )
    app.add_exception_handler(
        ApplicationError,
        error_handler(500),
    )
    app.add_exception_handler(
        Exception,
        unknown_exception_handler,
    )


def error_handler(status_code: int) -> Callable[..., ORJSONResponse]:
    return partial(app_error_handler, status_code=status_code)


def app_error_handler(
    request: Request,
    err: AppError,
    status_code: int,
) -> ORJSONResponse:
    return handle_error(
        request=request,
        err=err,
        status_code=status_code,
    )


def validation_error_handler(
    request: Request,
    err: ValidationError,
) -> ORJSONResponse:
    logger.info("Rejected invalid payload: %s", err.errors)
    return ORJSONResponse(
        content={"detail": err.message, "errors": err.errors},
        status_code=422,
    )


def unknown_exception_handler(
    request: Request,
    err: Exception,
) -> ORJSONResponse:
    logger.exception("Unknown error occurred", exc_info=err)
    text = err.args[0] if len(err.args) > 0 else "Unknown error"
    return ORJSONResponse(
        content={"detail": f"{err.__class__.__name__}: {text}"},
        status_code=500,
    )


def handle_error(
    request: Request,
    err: AppError,
    status_code: int,
) -> ORJSONResponse:
    logger.error("Handle error", exc_info=err, extra={"error": err})
    return ORJSONResponse(
        content={"detail": err.message},
        status_code=status_code,
    )
