"""Tests for the workspace seed script."""

from sqlalchemy import func, select

from app.features.permissions.dependencies import resolve_membership
from app.features.permissions.models import Role
from app.features.settings.store import ConfigStore, FeatureGate
from conftest import WORKSPACE_ID
from scripts import seed_workspace


async def test_seed_creates_roles_owner_and_toggle(db_engine, db):
    await seed_workspace.main(WORKSPACE_ID, "Seeded", owner_id=5)

    membership = await resolve_membership(db, 5, WORKSPACE_ID)
    assert membership.role.name == "Owner"
    assert membership.role.is_owner_role is True
    assert await FeatureGate(ConfigStore(db)).is_enabled(WORKSPACE_ID, "promotions") is True


async def test_seed_is_idempotent(db_engine, db):
    await seed_workspace.main(WORKSPACE_ID, "Seeded", owner_id=5)
    await seed_workspace.main(WORKSPACE_ID, "Seeded", owner_id=5)

    async with db_engine.connect() as conn:
        count = await conn.scalar(select(func.count(Role.id)).where(Role.workspace_id == WORKSPACE_ID))
    assert count == len(seed_workspace.DEFAULT_ROLES)


def test_parse_args():
    args = seed_workspace.parse_args(["--group-id", "7", "--name", "Crew"])
    assert (args.group_id, args.name, args.owner_id) == (7, "Crew", None)
