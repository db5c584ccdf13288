"""Translate guard exceptions into HTTP errors."""

from typing import Optional

from fastapi import HTTPException

from ..core.errors import (
    ConfusedOperation,
    GuardError,
    NotOwner,
    RoleNotFound,
)


def http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotOwner):
        status = 403
    elif isinstance(e, RoleNotFound):
        status = 404
    elif isinstance(e, ConfusedOperation):
        status = 422
    else:
        status = 400

    if isinstance(e, GuardError):
        return HTTPException(status_code=status, detail=e.to_dict())
    # bad hex from to_bytes()
    return HTTPException(status_code=400, detail={"error": "invalid_input", "message": str(e)})


def require_token(expected: str, authorization: Optional[str]) -> None:
    """Enforce `Authorization: Bearer <token>` when a token is configured."""
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        raise HTTPException(
            status_code=403,
            detail={"error": "invalid_token", "message": "missing or invalid bearer token"},
        )
