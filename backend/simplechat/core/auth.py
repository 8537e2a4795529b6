"""Authenticated user lookup.

Credentials are verified by the gateway in front of this service, which
forwards the user id in the X-User-Id header.
"""

from fastapi import Header, HTTPException


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id
