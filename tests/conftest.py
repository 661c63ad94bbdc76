"""Shared pytest fixtures for the workspace backend tests."""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import jwt
import pytest

# Point the app at a throwaway database before anything imports app.core.config.
_tmp_dir = tempfile.mkdtemp(prefix="workspace_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_tmp_dir) / 'test.db'}"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["VOTE_RATE_LIMIT"] = "1000/minute"
os.environ["REQUEST_TIMEOUT_SECONDS"] = "30"
os.environ.pop("APPWRITE_ENDPOINT", None)

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import insert, select  # noqa: E402

from app.core import config  # noqa: E402
from app.core.database.base import Base  # noqa: E402
from app.core.database.engine import AsyncSessionLocal, engine, init_db  # noqa: E402
from app.features.permissions.models import Role, WorkspaceMembership, workspace_user_roles  # noqa: E402
from app.features.promotions.models import Promotion, PromotionVote  # noqa: E402
from app.features.settings.models import Config  # noqa: E402
from app.features.settings.store import ConfigStore  # noqa: E402
from app.features.users.identity import Identity, get_identity_lookup  # noqa: E402
from app.features.workspaces.models import Workspace  # noqa: E402
from app.main import app  # noqa: E402


WORKSPACE_ID = 100


def make_token(user_id, **claims) -> str:
    """Session token for ``user_id`` signed with the test secret."""
    payload = {"userId": str(user_id), **claims}
    return jwt.encode(payload, config.SESSION_SECRET, algorithm="HS256")


def auth(user_id) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


class FakeIdentityLookup:
    """Identity provider stand-in; unknown ids fail like a provider outage."""

    def __init__(self, identities: dict[int, Identity] | None = None):
        self.identities = identities or {}
        self.calls: list[int] = []

    async def resolve(self, user_id: int) -> Identity:
        self.calls.append(user_id)
        if user_id not in self.identities:
            raise LookupError(f"no such user {user_id}")
        return self.identities[user_id]


class Seeder:
    """Writes fixture rows through short-lived sessions so API calls see committed data."""

    async def workspace(self, group_id: int = WORKSPACE_ID, name: str = "Test Group") -> Workspace:
        async with AsyncSessionLocal() as session:
            workspace = Workspace(group_id=group_id, name=name)
            session.add(workspace)
            await session.commit()
            return workspace

    async def role(
        self,
        name: str,
        permissions: list[str] | None = None,
        is_owner_role: bool = False,
        workspace_id: int = WORKSPACE_ID,
        role_id: str | None = None,
    ) -> Role:
        async with AsyncSessionLocal() as session:
            role = Role(
                workspace_id=workspace_id,
                name=name,
                permissions=permissions or [],
                is_owner_role=is_owner_role,
            )
            if role_id is not None:
                role.id = role_id
            session.add(role)
            await session.commit()
            await session.refresh(role)
            return role

    async def assign(self, user_id: int, role: Role, workspace_id: int = WORKSPACE_ID) -> None:
        async with AsyncSessionLocal() as session:
            await session.execute(
                insert(workspace_user_roles).values(workspace_id=workspace_id, user_id=user_id, role_id=role.id)
            )
            await session.commit()

    async def admin(self, user_id: int, is_admin: bool = True, workspace_id: int = WORKSPACE_ID) -> None:
        async with AsyncSessionLocal() as session:
            session.add(WorkspaceMembership(workspace_id=workspace_id, user_id=user_id, is_admin=is_admin))
            await session.commit()

    async def toggle(self, key: str = "promotions", enabled: bool = True, workspace_id: int = WORKSPACE_ID) -> None:
        async with AsyncSessionLocal() as session:
            await ConfigStore(session).set(key, {"enabled": enabled}, workspace_id)
            await session.commit()

    async def raw_config(self, key: str, raw_value: str, workspace_id: int = WORKSPACE_ID) -> None:
        async with AsyncSessionLocal() as session:
            session.add(Config(workspace_id=workspace_id, key=key, value=raw_value))
            await session.commit()

    async def promotion(
        self,
        recommender_id: int = 1,
        target_user_id: int = 2,
        current_role_id: str = "member",
        recommended_role_id: str = "manager",
        reason: str = "Consistently helpful",
        workspace_id: int = WORKSPACE_ID,
        **fields,
    ) -> Promotion:
        async with AsyncSessionLocal() as session:
            promotion = Promotion(
                workspace_id=workspace_id,
                recommender_id=recommender_id,
                target_user_id=target_user_id,
                current_role_id=current_role_id,
                recommended_role_id=recommended_role_id,
                reason=reason,
                **fields,
            )
            session.add(promotion)
            await session.commit()
            await session.refresh(promotion)
            return promotion

    async def vote(self, promotion_id: str, voter_id: int, is_upvote: bool = True,
                   justification: str = "ok", at: datetime | None = None) -> PromotionVote:
        async with AsyncSessionLocal() as session:
            vote = PromotionVote(
                promotion_id=promotion_id,
                voter_id=voter_id,
                is_upvote=is_upvote,
                justification=justification,
            )
            if at is not None:
                vote.created_at = at
                vote.updated_at = at
            session.add(vote)
            await session.commit()
            await session.refresh(vote)
            return vote

    # Reads

    async def get_promotion(self, promotion_id: str) -> Promotion | None:
        async with AsyncSessionLocal() as session:
            return await session.get(Promotion, promotion_id)

    async def votes(self, promotion_id: str) -> list[PromotionVote]:
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(PromotionVote).where(PromotionVote.promotion_id == promotion_id)
            )
            return list(result.scalars().all())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
async def db_engine():
    """Fresh schema per test."""
    await init_db()
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db(db_engine):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def seed(db_engine) -> Seeder:
    return Seeder()


@pytest.fixture
def identities() -> FakeIdentityLookup:
    return FakeIdentityLookup({
        1: Identity(username="alice", avatar_url="https://cdn.example/alice.png"),
        2: Identity(username="bob", avatar_url="https://cdn.example/bob.png"),
        3: Identity(username="carol", avatar_url=""),
    })


@pytest.fixture
async def client(db_engine, identities):
    app.dependency_overrides[get_identity_lookup] = lambda: identities
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
