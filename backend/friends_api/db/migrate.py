"""Forward-only schema migrations.

Scripts live in ``migrations/`` next to this module and are named
``NNNN_description.sql``. They are applied in file-name order, each in its
own transaction, and recorded in ``schema_migrations`` so a script runs at
most once per database.

Scripts are split into statements on ``;`` and lines starting with ``--``
are dropped. A ``;`` inside a string literal or trigger body is therefore not
supported; put such statements in a script of their own without one.
"""

from dataclasses import dataclass
from pathlib import Path
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from friends_api.db.pool import ConnectionPool


logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

HISTORY_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version VARCHAR(32) PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


class MigrationError(Exception):
    pass


@dataclass(frozen=True)
class Migration:
    version: str
    name: str
    sql: str

    @property
    def statements(self) -> list[str]:
        lines = [line for line in self.sql.splitlines() if not line.strip().startswith("--")]
        return [statement.strip() for statement in "\n".join(lines).split(";") if statement.strip()]


def load_migrations(directory: Path | None = None) -> list[Migration]:
    migrations: list[Migration] = []
    for path in sorted((directory or MIGRATIONS_DIR).glob("*.sql")):
        version, _, name = path.stem.partition("_")
        migrations.append(Migration(version=version, name=name or version, sql=path.read_text(encoding="utf-8")))

    versions = [migration.version for migration in migrations]
    duplicates = sorted({version for version in versions if versions.count(version) > 1})
    if duplicates:
        raise MigrationError(f"Duplicate migration versions: {', '.join(duplicates)}")
    return migrations


def applied_versions(session: Session) -> set[str]:
    rows = session.execute(text("SELECT version FROM schema_migrations"))
    return {row[0] for row in rows}


def run_pending_migrations(session: Session, migrations: list[Migration]) -> list[str]:
    """Apply every migration not yet recorded and return the applied versions."""
    session.execute(text(HISTORY_TABLE_DDL))
    session.commit()

    done = applied_versions(session)
    applied: list[str] = []
    for migration in migrations:
        if migration.version in done:
            continue

        logger.info("Applying migration %s (%s)", migration.version, migration.name)
        try:
            for statement in migration.statements:
                session.execute(text(statement))
            session.execute(
                text("INSERT INTO schema_migrations (version, name) VALUES (:version, :name)"),
                {"version": migration.version, "name": migration.name},
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise MigrationError(f"Migration {migration.version} ({migration.name}) failed: {exc}") from exc
        applied.append(migration.version)

    return applied


async def run_migrations(pool: ConnectionPool, migrations: list[Migration] | None = None) -> list[str]:
    if migrations is None:
        migrations = load_migrations()

    logger.info("Running pending migrations")
    async with pool.acquire() as handle:
        applied = await handle.interact(lambda session: run_pending_migrations(session, migrations))

    if applied:
        logger.info("Applied migrations: %s", ", ".join(applied))
    else:
        logger.info("Schema is up to date")
    return applied
