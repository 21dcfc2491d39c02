"""FastAPI dependency identifying the caller behind the auth gateway."""

from __future__ import annotations

from fastapi import Header, HTTPException, status


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Return the caller id from the ``X-User-Id`` header.

    The upstream gateway authenticates the request and sets the header.
    Raises 401 if it is missing or blank.
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_user_id.strip()
