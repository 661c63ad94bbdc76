"""
Seed script to create a workspace with default roles.

Run this script after database initialization to create:
- The workspace row for a group
- Default roles (Owner, Admin, Promotions Manager, Member)
- The owner's role assignment
- An enabled promotions toggle

Usage:
    uv run python -m scripts.seed_workspace --group-id 123 --name "My Group" --owner-id 456
"""
import argparse
import asyncio
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions.models import Role, workspace_user_roles
from app.features.permissions.vocabulary import ADMIN, MANAGE_PROMOTIONS, VIEW_PROMOTIONS
from app.features.settings.store import PROMOTIONS_FEATURE, ConfigStore
from app.features.workspaces.models import Workspace
from app.utils import get_logger


log = get_logger(__name__)


OWNER_ROLE = "Owner"

DEFAULT_ROLES = {
    OWNER_ROLE: {
        "is_owner_role": True,
        "permissions": [],  # Owner roles bypass permission checks
    },
    "Admin": {
        "is_owner_role": False,
        "permissions": [ADMIN],
    },
    "Promotions Manager": {
        "is_owner_role": False,
        "permissions": ["view_wall", "view_members", VIEW_PROMOTIONS, MANAGE_PROMOTIONS],
    },
    "Member": {
        "is_owner_role": False,
        "permissions": ["view_wall", "view_members", VIEW_PROMOTIONS],
    },
}


async def seed_workspace(db: AsyncSession, group_id: int, name: str) -> Workspace:
    """Create the workspace if it does not exist yet."""
    workspace = await db.get(Workspace, group_id)
    if workspace:
        log.debug(f"Workspace {group_id} already exists, skipping")
        return workspace

    workspace = Workspace(group_id=group_id, name=name)
    db.add(workspace)
    await db.commit()
    log.info(f"Created workspace {group_id}: {name}")
    return workspace


async def seed_roles(db: AsyncSession, group_id: int) -> dict[str, Role]:
    """
    Create default roles for the workspace.

    Returns:
        Dictionary mapping role names to Role objects
    """
    log.info("Creating default roles...")
    roles_map = {}

    for role_name, role_config in DEFAULT_ROLES.items():
        stmt = select(Role).where(Role.workspace_id == group_id, Role.name == role_name)
        result = await db.execute(stmt)
        existing = result.scalars().first()

        if existing:
            log.debug(f"Role '{role_name}' already exists, skipping")
            roles_map[role_name] = existing
            continue

        role = Role(
            workspace_id=group_id,
            name=role_name,
            permissions=role_config["permissions"],
            is_owner_role=role_config["is_owner_role"],
        )
        db.add(role)
        roles_map[role_name] = role
        log.info(f"Created role '{role_name}' with {len(role_config['permissions'])} permissions")

    await db.commit()
    return roles_map


async def assign_owner(db: AsyncSession, group_id: int, owner_id: int, owner_role: Role):
    stmt = select(workspace_user_roles).where(
        workspace_user_roles.c.workspace_id == group_id,
        workspace_user_roles.c.user_id == owner_id,
        workspace_user_roles.c.role_id == owner_role.id,
    )
    if (await db.execute(stmt)).first():
        log.debug(f"User {owner_id} already holds the owner role, skipping")
        return

    await db.execute(
        insert(workspace_user_roles).values(
            workspace_id=group_id,
            user_id=owner_id,
            role_id=owner_role.id,
        )
    )
    await db.commit()
    log.info(f"Assigned '{owner_role.name}' to user {owner_id}")


async def main(group_id: int, name: str, owner_id: int | None):
    """Create the workspace, its roles and enable promotions."""
    log.info("Starting workspace seeding...")

    # Initialize database tables first
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            await seed_workspace(db, group_id, name)
            roles_map = await seed_roles(db, group_id)
            if owner_id is not None:
                await assign_owner(db, group_id, owner_id, roles_map[OWNER_ROLE])

            await ConfigStore(db).set(PROMOTIONS_FEATURE, {"enabled": True}, group_id)
            await db.commit()

            log.info("Workspace seeding completed successfully!")
            for role_name in roles_map:
                log.info(f"  - {role_name}")
        except Exception as e:
            log.error(f"Error seeding workspace: {e}", exc_info=True)
            await db.rollback()
            raise


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a workspace with default roles")
    parser.add_argument("--group-id", type=int, required=True, help="Numeric group id")
    parser.add_argument("--name", required=True, help="Workspace display name")
    parser.add_argument("--owner-id", type=int, default=None, help="User to assign the Owner role")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(main(args.group_id, args.name, args.owner_id))
