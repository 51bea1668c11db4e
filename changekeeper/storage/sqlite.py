"""SQLite state store, so changelist assignments survive restarts."""

import json
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pydantic
import structlog

from changekeeper.changelists.models import PersistedState
from changekeeper.exceptions import StorageError

logger = structlog.get_logger()

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS changelist_state (
    workspace TEXT PRIMARY KEY,
    state TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


class SqliteStateStore:
    """One JSON snapshot row per workspace key."""

    def __init__(self, db_path: Path | str, workspace: str = "default") -> None:
        self._db_path = str(db_path)
        self._workspace = workspace
        self._db: aiosqlite.Connection | None = None

    async def setup(self) -> None:
        try:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute(_CREATE_TABLE)
            await self._db.commit()
            logger.info(
                "sqlite_store_initialized",
                db_path=self._db_path,
                workspace=self._workspace,
            )
        except Exception as e:
            logger.error(
                "sqlite_store_init_failed", db_path=self._db_path, error=str(e)
            )
            raise StorageError(f"Failed to initialize SQLite store: {e}") from e

    async def teardown(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("sqlite_store_closed", db_path=self._db_path)

    async def load(self) -> PersistedState | None:
        db = self._require_db()
        try:
            cursor = await db.execute(
                "SELECT state FROM changelist_state WHERE workspace = ?",
                (self._workspace,),
            )
            row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(f"Failed to load changelist state: {e}") from e
        if not row:
            logger.debug("sqlite_state_not_found", workspace=self._workspace)
            return None
        try:
            return PersistedState.model_validate(json.loads(row["state"]))
        except (json.JSONDecodeError, pydantic.ValidationError) as e:
            logger.warning(
                "sqlite_state_malformed", workspace=self._workspace, error=str(e)
            )
            return None

    async def save(self, state: PersistedState) -> None:
        db = self._require_db()
        try:
            await db.execute(
                """INSERT OR REPLACE INTO changelist_state
                   (workspace, state, updated_at)
                   VALUES (?, ?, ?)""",
                (
                    self._workspace,
                    json.dumps(state.to_json_dict()),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to save changelist state: {e}") from e

    async def clear(self) -> None:
        db = self._require_db()
        try:
            await db.execute(
                "DELETE FROM changelist_state WHERE workspace = ?", (self._workspace,)
            )
            await db.commit()
        except Exception as e:
            raise StorageError(f"Failed to clear changelist state: {e}") from e

    def _require_db(self) -> aiosqlite.Connection:
        if not self._db:
            raise StorageError("Store not initialized; call setup() first")
        return self._db
