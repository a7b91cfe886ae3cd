"""
Schema migration runner

Applies pending .sql files from the migrations directory in filename order,
each in its own transaction, and records them in the migrations table.

Usage:
    python -m database.migrations [--dir PATH]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import asyncpg

from config import settings
from database.connection import ensure_database_exists

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS migrations (
        id SERIAL PRIMARY KEY,
        filename VARCHAR(255) NOT NULL UNIQUE,
        executed_at TIMESTAMPTZ DEFAULT NOW()
    )
"""


class MigrationError(Exception):
    """A migration could not be applied"""


def list_migration_files(migrations_dir: Path) -> List[str]:
    """Names of the .sql files in the directory, sorted"""
    if not migrations_dir.is_dir():
        raise MigrationError(f"Migrations directory not found: {migrations_dir}")
    return sorted(path.name for path in migrations_dir.iterdir() if path.suffix == ".sql" and path.is_file())


async def create_migrations_table(conn) -> None:
    await conn.execute(MIGRATIONS_TABLE_SQL)
    logger.info("Migrations table ready")


async def get_executed_migrations(conn) -> List[str]:
    rows = await conn.fetch("SELECT filename FROM migrations ORDER BY executed_at, id")
    return [row["filename"] for row in rows]


async def execute_migration(conn, migrations_dir: Path, filename: str) -> None:
    """Run one migration file and record it, atomically"""
    sql = (migrations_dir / filename).read_text(encoding="utf-8")

    try:
        async with conn.transaction():
            await conn.execute(sql)
            await conn.execute("INSERT INTO migrations (filename) VALUES ($1)", filename)
    except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        raise MigrationError(f"Failed to execute migration {filename}: {e}") from e

    logger.info(f"Migration {filename} executed successfully")


async def apply_pending_migrations(conn, migrations_dir: Path) -> List[str]:
    """
    Apply every migration not yet recorded on this connection

    Returns:
        Filenames applied by this run, in order
    """
    await create_migrations_table(conn)

    executed = set(await get_executed_migrations(conn))
    logger.info(f"Executed migrations: {sorted(executed)}")

    files = list_migration_files(migrations_dir)
    logger.info(f"Found migration files: {files}")

    applied = []
    for filename in files:
        if filename in executed:
            logger.info(f"Skipping already executed migration: {filename}")
            continue
        logger.info(f"Executing migration: {filename}")
        await execute_migration(conn, migrations_dir, filename)
        applied.append(filename)

    if applied:
        logger.info(f"Successfully executed {len(applied)} migration(s).")
    else:
        logger.info("No new migrations to execute. Database is up to date.")

    return applied


async def run_migrations(migrations_dir: Optional[Path] = None) -> List[str]:
    """Ensure the database exists, then apply pending migrations"""
    migrations_dir = Path(migrations_dir or settings.MIGRATIONS_DIR)
    logger.info("Starting database migrations...")

    await ensure_database_exists()

    conn = await asyncpg.connect(**settings.connection_params())
    try:
        return await apply_pending_migrations(conn, migrations_dir)
    finally:
        await conn.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Apply pending database migrations")
    parser.add_argument("--dir", dest="migrations_dir", type=Path, default=None,
                        help=f"Migrations directory (default: {settings.MIGRATIONS_DIR})")
    args = parser.parse_args(argv)

    try:
        asyncio.run(run_migrations(args.migrations_dir))
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
