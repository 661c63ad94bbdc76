"""
Session token verification and the Appwrite client.

Sessions are issued elsewhere; this module only reads the numeric user id out
of the bearer token.
"""
import jwt
from typing import Any, Optional
from appwrite.client import Client

from app.core import config
from app.core.errors import Unauthenticated
from app.utils import get_logger


log = get_logger(__name__)


class AppwriteClient:
    """Singleton Appwrite client for server-side operations."""
    
    _instance: Optional[Client] = None
    
    @classmethod
    def get_client(cls) -> Client:
        """Get or create Appwrite client instance."""
        if cls._instance is None:
            if not config.APPWRITE_ENDPOINT or not config.APPWRITE_PROJECT_ID:
                raise RuntimeError("Appwrite is not configured")
            cls._instance = Client()
            cls._instance.set_endpoint(config.APPWRITE_ENDPOINT)
            cls._instance.set_project(config.APPWRITE_PROJECT_ID)
            cls._instance.set_key(config.APPWRITE_API_KEY)
        return cls._instance


def verify_jwt_token(token: str) -> dict[str, Any]:
    """
    Decode a session token and return its payload.
    
    With SESSION_SECRET configured the HS256 signature is verified; otherwise
    the token is trusted as signed by the identity provider and only expiry is
    checked.
    
    Raises:
        Unauthenticated: If the token is malformed, expired or badly signed
    """
    try:
        if config.SESSION_SECRET:
            return jwt.decode(token, config.SESSION_SECRET, algorithms=["HS256"])
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError as e:
        log.debug("Rejected session token: %s", e)
        raise Unauthenticated()


def user_id_from_payload(payload: dict[str, Any]) -> int:
    """Extract the numeric user id from a token payload."""
    raw = payload.get("userId")
    if isinstance(raw, bool) or raw is None:
        raise Unauthenticated()
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise Unauthenticated()
