"""Owner identity supplied by the authenticating gateway.

Tokens are verified upstream; this service only trusts the owner header
forwarded with each request.
"""
from fastapi import HTTPException, Request, status

from core.settings import SETTINGS


async def get_current_owner(request: Request) -> str:
    owner_id = (request.headers.get(SETTINGS.AUTH.OWNER_HEADER) or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, no owner identity",
        )
    return owner_id
