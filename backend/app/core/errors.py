"""
Domain exceptions raised by services and translated to HTTP status codes in routes
"""
from fastapi import HTTPException, status


class NotFoundError(LookupError):
    """Requested entity does not exist (404)"""


class PermissionDeniedError(PermissionError):
    """Caller does not own the entity or lacks the required role (403)"""


class ConflictError(Exception):
    """Entity already exists or is in a conflicting state (409)"""


def to_http_exception(exc: Exception) -> HTTPException:
    """
    Map a domain exception to an HTTPException

    ValueError -> 400, NotFoundError -> 404, PermissionDeniedError -> 403,
    ConflictError -> 409. Anything else is the caller's problem.
    """
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    raise TypeError(f"No HTTP mapping for {type(exc).__name__}")


DOMAIN_ERRORS = (NotFoundError, PermissionDeniedError, ConflictError, ValueError)
