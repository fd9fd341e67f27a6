"""
Schema creation and upgrades.

The schema version lives in the ``app_info`` table under the key ``version``.
An empty database is version 0. Each Migration moves the store one version
forward and runs in its own transaction together with the version bump, so a
failing step leaves the database at the previous version.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from timekeeper.domain.errors import IoFailure, MigrationFailed, UnsupportedSchema
from timekeeper.infra.db import DatabaseEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """One forward-only schema step"""
    version: int
    description: str
    statements: Tuple[str, ...]


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        version=1,
        description="Create app_info and time_entries tables",
        statements=(
            """
            CREATE TABLE app_info (
                key VARCHAR(50) NOT NULL PRIMARY KEY,
                value VARCHAR(200) NOT NULL
            )
            """,
            """
            CREATE TABLE time_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                project VARCHAR(200),
                label VARCHAR(200),
                start_time DATETIME NOT NULL,
                end_time DATETIME,
                running BOOLEAN UNIQUE,
                created_at DATETIME NOT NULL,
                CHECK (end_time IS NULL OR end_time >= start_time),
                CHECK ((end_time IS NULL AND running = 1) OR (end_time IS NOT NULL AND running IS NULL))
            )
            """,
        ),
    ),
    Migration(
        version=2,
        description="Add note column to time_entries",
        statements=(
            "ALTER TABLE time_entries ADD COLUMN note TEXT",
        ),
    ),
    Migration(
        version=3,
        description="Index time_entries by start_time and project",
        statements=(
            "CREATE INDEX ix_time_entries_start_time ON time_entries (start_time)",
            "CREATE INDEX ix_time_entries_project ON time_entries (project)",
        ),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


def _read_version(conn) -> int:
    has_info = conn.execute(
        text("SELECT count(*) FROM sqlite_master WHERE type='table' AND name='app_info'")
    ).scalar_one()
    if not has_info:
        return 0
    value = conn.execute(
        text("SELECT value FROM app_info WHERE key='version'")
    ).scalar_one_or_none()
    return int(value) if value is not None else 0


def _write_version(conn, version: int) -> None:
    conn.execute(
        text(
            "INSERT INTO app_info (key, value) VALUES ('version', :value) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value"
        ),
        {"value": str(version)},
    )


async def get_schema_version(engine: DatabaseEngine) -> int:
    """Return the schema version stored in the database (0 when empty)"""
    try:
        async with engine.engine.connect() as conn:
            return await conn.run_sync(_read_version)
    except SQLAlchemyError as e:
        raise IoFailure(f"Could not read schema version: {e}") from e


async def apply_migration(engine: DatabaseEngine, migration: Migration) -> None:
    """Run one step and record its version, atomically"""
    try:
        async with engine.engine.begin() as conn:
            for statement in migration.statements:
                await conn.execute(text(statement))
            await conn.run_sync(_write_version, migration.version)
    except SQLAlchemyError as e:
        logger.error(f"Migration {migration.version} ({migration.description}) failed: {e}")
        raise MigrationFailed(migration.version, str(e)) from e
    logger.info(f"Applied migration {migration.version}: {migration.description}")


async def ensure_schema(engine: DatabaseEngine,
                        migrations: Sequence[Migration] = MIGRATIONS) -> int:
    """
    Bring the database up to the newest schema version.

    Args:
        engine: Database to upgrade
        migrations: Ordered steps; defaults to the application's migrations

    Returns:
        The schema version after upgrading

    Raises:
        UnsupportedSchema: The stored version is newer than any known step
        MigrationFailed: A step failed; earlier steps stay applied
    """
    steps = sorted(migrations, key=lambda m: m.version)
    latest = steps[-1].version if steps else 0

    current = await get_schema_version(engine)
    if current > latest:
        raise UnsupportedSchema(current, latest)

    for migration in steps:
        if migration.version <= current:
            continue
        await apply_migration(engine, migration)
        current = migration.version

    return current
