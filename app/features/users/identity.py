"""
Display identity for numeric user ids.

Names and avatars come from the identity provider (Appwrite). Lookups are
decoration only: any failure degrades to a placeholder identity and never
fails the request that asked for it.
"""
import asyncio
from dataclasses import dataclass
from typing import Iterable, Protocol

from appwrite.services.users import Users

from app.features.users.auth import AppwriteClient
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    username: str
    avatar_url: str


UNKNOWN_IDENTITY = Identity(username="Unknown User", avatar_url="")


class IdentityLookup(Protocol):
    async def resolve(self, user_id: int) -> Identity:
        ...


class AppwriteIdentityLookup:
    """Resolve identities through the Appwrite Users service."""

    async def resolve(self, user_id: int) -> Identity:
        users = Users(AppwriteClient.get_client())
        # The SDK is blocking
        user = await asyncio.to_thread(users.get, str(user_id))
        prefs = user.get("prefs") or {}
        return Identity(
            username=user.get("name") or UNKNOWN_IDENTITY.username,
            avatar_url=prefs.get("avatarUrl", "") or "",
        )


async def resolve_identity(lookup: IdentityLookup, user_id: int) -> Identity:
    try:
        return await lookup.resolve(user_id)
    except Exception as e:
        log.warning("Identity lookup failed for user %s: %s", user_id, e)
        return UNKNOWN_IDENTITY


async def resolve_identities(lookup: IdentityLookup, user_ids: Iterable[int]) -> dict[int, Identity]:
    """Resolve each distinct id once, concurrently."""
    unique_ids = list(dict.fromkeys(user_ids))
    identities = await asyncio.gather(*(resolve_identity(lookup, uid) for uid in unique_ids))
    return dict(zip(unique_ids, identities))


_default_lookup = AppwriteIdentityLookup()


def get_identity_lookup() -> IdentityLookup:
    """FastAPI dependency; overridden in tests."""
    return _default_lookup
