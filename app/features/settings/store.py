"""
Workspace settings access.

ConfigStore is bound to one request's session and reads through to the
database on every call; nothing is cached across requests. FeatureGate
interprets toggle entries on top of it.
"""
import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.settings.models import Config
from app.utils import get_logger


log = get_logger(__name__)


FEATURE_KEYS: tuple[str, ...] = (
    "guides",
    "leaderboard",
    "sessions",
    "allies",
    "notices",
    "policies",
    "live_servers",
    "promotions",
)

PROMOTIONS_FEATURE = "promotions"


class MalformedConfig(ValueError):
    """A stored value that cannot be decoded."""


def decode_value(raw: str) -> Any:
    """
    Decode a stored value.

    Values written by older clients may be JSON strings that themselves hold
    serialized JSON, so one extra level of string decoding is attempted.
    """
    try:
        value = json.loads(raw)
        if isinstance(value, str):
            value = json.loads(value)
    except (TypeError, ValueError) as e:
        raise MalformedConfig(str(e)) from e
    return value


class ConfigStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _row(self, key: str, workspace_id: int) -> Config | None:
        result = await self.db.execute(
            select(Config).where(Config.workspace_id == workspace_id, Config.key == key)
        )
        return result.scalar_one_or_none()

    async def get(self, key: str, workspace_id: int) -> Any | None:
        """
        Return the decoded value, or None when unset.

        Raises:
            MalformedConfig: The stored payload does not decode
        """
        row = await self._row(key, workspace_id)
        if row is None:
            return None
        return decode_value(row.value)

    async def set(self, key: str, value: Any, workspace_id: int) -> None:
        """Create or replace the entry. The caller's transaction commits it."""
        serialized = json.dumps(value)
        row = await self._row(key, workspace_id)
        if row is None:
            self.db.add(Config(workspace_id=workspace_id, key=key, value=serialized))
        else:
            row.value = serialized
        await self.db.flush()


def toggle_enabled(value: Any) -> bool:
    """Only an object whose ``enabled`` member is literally true turns a feature on."""
    return isinstance(value, dict) and value.get("enabled") is True


class FeatureGate:
    def __init__(self, store: ConfigStore):
        self.store = store

    async def is_enabled(self, workspace_id: int, feature_key: str) -> bool:
        """Corrupt or unset toggles read as off."""
        try:
            value = await self.store.get(feature_key, workspace_id)
        except MalformedConfig as e:
            log.warning("Malformed %r toggle in workspace %s treated as disabled: %s", feature_key, workspace_id, e)
            return False
        return toggle_enabled(value)
