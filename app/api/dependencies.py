"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, status


def get_account_id(x_account_id: str | None = Header(default=None)) -> str:
    """
    Resolve the calling account from the `X-Account-Id` header set by the auth gateway.
    """

    account_id = (x_account_id or "").strip()
    if not account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Account-Id header is required.",
        )
    return account_id
