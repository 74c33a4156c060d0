"""
API authentication.

Validates Supabase-issued bearer tokens. Every campaign and data route
acts on behalf of the returned user.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.services.supabase import get_supabase_client

security = HTTPBearer()


@dataclass
class CurrentUser:
    """Authenticated API user."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """
    Validate the Supabase JWT and return the user.

    Raises:
        HTTPException: If the token is invalid.
    """
    token = credentials.credentials

    try:
        user_response = get_supabase_client().auth.get_user(token)
        if not user_response or not user_response.user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        auth_user = user_response.user
        metadata = getattr(auth_user, "user_metadata", None) or {}

        return CurrentUser(
            id=str(auth_user.id),
            email=auth_user.email,
            name=metadata.get("name") or metadata.get("full_name"),
        )

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Authentication error: {str(e)}"
        )
