import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE = 'Database unavailable.'
UNPROCESSABLE_ENTITY = 422


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE,
    )


def error_body(status_code: int, message: str, errors: list | None = None) -> dict:
    return {
        'success': False,
        'statusCode': status_code,
        'message': message,
        'errors': errors or [],
    }


def _field_name(location: tuple) -> str:
    parts = [str(part) for part in location if part not in ('body', 'query', 'path', 'form')]
    return '.'.join(parts) or '.'.join(str(part) for part in location)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.detail)

    if isinstance(exc.detail, str):
        body = error_body(exc.status_code, exc.detail)
    else:
        body = error_body(exc.status_code, 'Request failed.', [exc.detail])
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, 'headers', None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {'field': _field_name(tuple(error.get('loc', ()))), 'message': error.get('msg', '')}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=UNPROCESSABLE_ENTITY,
        content=error_body(UNPROCESSABLE_ENTITY, 'Validation failed.', errors),
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body(status.HTTP_503_SERVICE_UNAVAILABLE, DATABASE_UNAVAILABLE),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error while handling %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, 'Internal server error.'),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
