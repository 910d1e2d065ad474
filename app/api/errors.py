# app/api/errors.py
from http import HTTPStatus

from fastapi import HTTPException

from app.core.errors import ConflictError, NotFoundError, SchedulingError, ValidationError


def to_http_exception(exc: SchedulingError) -> HTTPException:
    """
    Translate a scheduling error into the HTTPException a route raises.
    """
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=HTTPStatus.CONFLICT, detail=str(exc))
    return HTTPException(status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail=str(exc))
