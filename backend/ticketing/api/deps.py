"""
Request identity dependencies.

Authentication happens at the gateway; it forwards the resolved user as
X-User-ID and, for staff, X-User-Role. Nothing here verifies credentials.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status


async def get_current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    return x_user_id


async def get_owner_filter(
    user_id: int = Depends(get_current_user_id),
    x_user_role: Optional[str] = Header(None),
) -> Optional[int]:
    """User id to scope booking lookups by; None for admins, who see everything."""
    if x_user_role == "admin":
        return None
    return user_id
