"""
Database connection and pool management
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import asyncpg
from fastapi import Request

from config import settings
from utils.errors import StorageCode, StorageError

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE -> storage code
SQLSTATE_CODES = {
    "23505": StorageCode.DUPLICATE_ENTRY,
    "23502": StorageCode.NOT_NULL_VIOLATION,
    "23503": StorageCode.FOREIGN_KEY_VIOLATION,
    "42703": StorageCode.UNKNOWN_COLUMN,
    "28P01": StorageCode.ACCESS_DENIED,
    "28000": StorageCode.ACCESS_DENIED,
}

# Server went away underneath an open connection
CONNECTION_LOST_SQLSTATES = {"57P01", "57P02", "57P03"}

DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


@dataclass
class QueryResult:
    """Rows returned by a statement plus the number of rows it touched"""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    affected: int = 0


def translate_error(exc: BaseException) -> StorageError:
    """Classify a driver/network exception into a StorageError"""
    sqlstate = getattr(exc, "sqlstate", None)
    message = str(exc) or type(exc).__name__

    if isinstance(exc, (asyncpg.exceptions.ConnectionDoesNotExistError, ConnectionResetError)):
        return StorageError(StorageCode.CONNECTION_LOST, message, retryable=True, sqlstate=sqlstate)
    if sqlstate and (sqlstate.startswith("08") or sqlstate in CONNECTION_LOST_SQLSTATES):
        return StorageError(StorageCode.CONNECTION_LOST, message, retryable=True, sqlstate=sqlstate)
    if sqlstate in SQLSTATE_CODES:
        return StorageError(SQLSTATE_CODES[sqlstate], message, sqlstate=sqlstate)
    if isinstance(exc, (OSError, asyncio.TimeoutError)):
        return StorageError(StorageCode.CONNECTION_REFUSED, message, retryable=True)
    return StorageError(StorageCode.UNKNOWN, message, sqlstate=sqlstate)


def affected_rows(status: Optional[str], rows: Sequence[Any]) -> int:
    """Parse the affected row count out of a command tag like 'UPDATE 1'"""
    if status:
        last = status.split()[-1]
        if last.isdigit():
            return int(last)
    return len(rows)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class Database:
    """
    Owns the asyncpg pool for the lifetime of the process.

    Created once by the application lifespan and handed to request handlers
    through `get_database`; nothing else holds a reference to the pool.
    """

    def __init__(self, pool: Optional[asyncpg.Pool] = None):
        self._pool = pool

    @property
    def pool(self):
        return self._pool

    async def connect(self) -> None:
        """Create the connection pool"""
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                **settings.connection_params(),
                min_size=settings.DB_POOL_MIN_SIZE,
                max_size=settings.DB_POOL_MAX_SIZE,
                command_timeout=settings.DB_COMMAND_TIMEOUT,
                statement_cache_size=settings.DB_STATEMENT_CACHE_SIZE,
                init=self._on_new_connection,
            )
        except DRIVER_ERRORS as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise translate_error(e) from e
        logger.info(
            f"Database pool initialized ({settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}, "
            f"max {settings.DB_POOL_MAX_SIZE} connections)"
        )

    @staticmethod
    async def _on_new_connection(conn) -> None:
        logger.info(f"New database connection established as pid {conn.get_server_pid()}")

    async def close(self) -> None:
        """Close all pooled connections"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        logger.info("Database connections closed")

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """
        Execute one parameterized statement on a pooled connection

        Args:
            sql: Statement using $1..$n placeholders
            params: Positional parameter values

        Returns:
            QueryResult with the fetched rows as dicts and the affected row count

        Raises:
            StorageError: On any driver, network or constraint failure
        """
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")

        try:
            async with self._pool.acquire() as conn:
                statement = await conn.prepare(sql)
                records = await statement.fetch(*params)
                status = statement.get_statusmsg()
        except DRIVER_ERRORS as e:
            error = translate_error(e)
            if error.code is StorageCode.CONNECTION_LOST:
                logger.warning("Attempting to reconnect to database...")
            logger.error(f"Database query error: {e}")
            raise error from e

        rows = [dict(record) for record in records]
        return QueryResult(rows=rows, affected=affected_rows(status, rows))

    async def test_connection(self) -> bool:
        """Check connectivity with a trivial round trip"""
        try:
            result = await self.query("SELECT NOW() AS server_time")
        except StorageError as e:
            logger.error(f"Database connection test failed: {e.message}")
            return False
        logger.info(f"Database connection test: {result.rows[0]['server_time']}")
        return True


async def ensure_database_exists(database: Optional[str] = None) -> bool:
    """
    Create the target database if it is missing

    Returns:
        True if the database was created, False if it already existed
    """
    database = database or settings.DB_NAME

    try:
        conn = await asyncpg.connect(**settings.connection_params(database))
    except asyncpg.exceptions.InvalidCatalogNameError:
        logger.info(f"Database {database} does not exist, creating it")
    except DRIVER_ERRORS as e:
        logger.error(f"Error initializing database: {e}")
        raise translate_error(e) from e
    else:
        await conn.close()
        return False

    try:
        conn = await asyncpg.connect(**settings.connection_params(settings.DB_MAINTENANCE_DB))
    except DRIVER_ERRORS as e:
        logger.error(f"Error initializing database: {e}")
        raise translate_error(e) from e

    try:
        await conn.execute(f"CREATE DATABASE {quote_identifier(database)} ENCODING 'UTF8'")
    except asyncpg.exceptions.DuplicateDatabaseError:
        logger.info(f"Database {database} was created concurrently")
        return False
    except DRIVER_ERRORS as e:
        logger.error(f"Error initializing database: {e}")
        raise translate_error(e) from e
    finally:
        await conn.close()

    logger.info(f"Database {database} initialized")
    return True


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the application's Database"""
    return request.app.state.database
