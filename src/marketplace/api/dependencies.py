"""Caller identity.

Authentication happens upstream; by the time a request lands here the
gateway has stamped the authenticated user id on ``X-User-Id``. Client
bodies never carry identity, prices or totals that the engine trusts.
"""

from fastapi import Header, HTTPException


async def current_user(x_user_id: str = Header(default="")) -> str:
    if not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()
