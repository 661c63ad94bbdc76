"""
Permission evaluation for workspace memberships.

A membership resolves to exactly one grant:
- Bypass: the admin override or an owner role; every check passes
- ExplicitSet: only the tokens carried by the resolved role pass

Nothing here touches the database, so the rules can be exercised on plain
objects. Loading memberships lives in app.features.permissions.dependencies.
"""
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence, Union

from app.features.permissions.vocabulary import ALL_PERMISSIONS
from app.utils import get_logger


log = get_logger(__name__)


class RoleLike(Protocol):
    id: str
    name: str
    permissions: list[str]
    is_owner_role: bool


@dataclass(frozen=True)
class Membership:
    """A user's resolved role and admin override within one workspace."""
    user_id: int
    workspace_id: int
    role: RoleLike
    is_admin: bool = False


@dataclass(frozen=True)
class Bypass:
    reason: str  # "admin" or "owner"


@dataclass(frozen=True)
class ExplicitSet:
    tokens: frozenset[str]


Grant = Union[Bypass, ExplicitSet]


# ============================================================================
# Role ordering
# ============================================================================

def role_priority(role: RoleLike) -> tuple[int, str]:
    """
    Sort key deciding which assignment is authoritative.

    Owner roles come first; among equals the lowest role id wins. Role ids are
    ULIDs, so that is the role created first. The key is total because ids
    are unique.
    """
    return (0 if role.is_owner_role else 1, role.id)


def order_roles(roles: Iterable[RoleLike]) -> list[RoleLike]:
    return sorted(roles, key=role_priority)


def pick_authoritative_role(roles: Sequence[RoleLike]) -> RoleLike | None:
    """Return the role that governs the user's access, or None for no roles."""
    if not roles:
        return None
    return min(roles, key=role_priority)


# ============================================================================
# Authorization
# ============================================================================

def grant_for(membership: Membership) -> Grant:
    if membership.is_admin:
        return Bypass("admin")
    if membership.role.is_owner_role:
        return Bypass("owner")
    return ExplicitSet(frozenset(membership.role.permissions or ()))


def authorize(membership: Membership | None, required_permission: str) -> bool:
    """
    Decide whether a membership holds ``required_permission``.

    Fails closed for non-members. Bypass grants allow any token, including
    ones outside the vocabulary; explicit sets allow only what they list.
    """
    if membership is None:
        log.debug("Denied %s: no membership", required_permission)
        return False

    grant = grant_for(membership)
    if isinstance(grant, Bypass):
        log.debug(
            "User %s granted %s in workspace %s via %s bypass",
            membership.user_id, required_permission, membership.workspace_id, grant.reason
        )
        return True

    allowed = required_permission in grant.tokens
    if not allowed:
        log.debug(
            "User %s denied %s in workspace %s (role %s)",
            membership.user_id, required_permission, membership.workspace_id, membership.role.id
        )
    return allowed


def authorize_any(membership: Membership | None, permissions: Iterable[str]) -> bool:
    return any(authorize(membership, permission) for permission in permissions)


def effective_permissions(membership: Membership) -> list[str]:
    """Tokens the membership can exercise, in vocabulary order where possible."""
    grant = grant_for(membership)
    if isinstance(grant, Bypass):
        return list(ALL_PERMISSIONS)
    ordered = [token for token in ALL_PERMISSIONS if token in grant.tokens]
    # Tokens outside the vocabulary are kept so callers see what the role carries
    ordered.extend(sorted(grant.tokens.difference(ALL_PERMISSIONS)))
    return ordered
