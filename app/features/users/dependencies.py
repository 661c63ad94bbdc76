"""
FastAPI dependencies for authentication.
"""
from typing import Annotated, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.errors import Unauthenticated
from app.features.users.auth import verify_jwt_token, user_id_from_payload


security = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)]
) -> int:
    """
    Return the authenticated user's numeric id.
    
    Usage:
        @router.get("/me")
        async def get_me(user_id: int = Depends(get_current_user_id)):
            ...
    
    Raises:
        Unauthenticated: No bearer token, or one that does not verify
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    payload = verify_jwt_token(credentials.credentials)
    return user_id_from_payload(payload)


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
