# load_tracking/infra/database.py
"""
PostgreSQL database manager.
Connection pool, automatic retry on connection errors, transactions.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import wraps
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, TypeVar

import asyncpg
from asyncpg import Connection, Pool, Record

from load_tracking.common.logger import get_logger, log_error, log_info, log_warning
from load_tracking.common.constants import TypeMsg

if TYPE_CHECKING:
    from load_tracking.config.loader import DatabaseSettings

logger = get_logger("database")

T = TypeVar("T")

# Arbitrary id for the schema migration advisory lock
SCHEMA_LOCK_ID = 482_915_003


def retry_on_connection_error(
    max_attempts: int = 3,
    delay: float = 1.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry an async call when the database connection fails.

    Args:
        max_attempts: Maximum number of attempts
        delay: Base delay between attempts (seconds), multiplied by the attempt number
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Exception | None = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except (
                    asyncpg.PostgresConnectionError,
                    asyncpg.InterfaceError,
                    ConnectionRefusedError,
                    OSError,
                ) as e:
                    last_error = e
                    if attempt < max_attempts:
                        await log_info(
                            f"Database connection error (attempt {attempt}/{max_attempts}): {e}",
                            type_msg=TypeMsg.WARNING,
                        )
                        await asyncio.sleep(delay * attempt)
                    else:
                        await log_error(f"Database unreachable after {max_attempts} attempts: {e}")

            raise last_error  # type: ignore

        return wrapper  # type: ignore

    return decorator


class DatabaseManager:
    """
    PostgreSQL connection pool owner.
    One instance per process, created in the application lifespan.
    """

    def __init__(self) -> None:
        self._pool: Pool | None = None

    @property
    def pool(self) -> Pool:
        if self._pool is None:
            raise RuntimeError("Connection pool is not initialized. Call connect() first.")
        return self._pool

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @retry_on_connection_error(max_attempts=3, delay=1.0)
    async def connect(
        self,
        dsn: str | None = None,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: int = 30,
    ) -> None:
        """
        Create the connection pool.

        Args:
            dsn: Connection string (taken from config when None)
            min_size: Minimum pool size
            max_size: Maximum pool size
            command_timeout: Command timeout (seconds)
        """
        if self._pool is not None:
            return

        if dsn is None:
            from load_tracking.config import settings
            dsn = settings.database.dsn
            min_size = settings.database.DB_MIN_POOL_SIZE
            max_size = settings.database.DB_MAX_POOL_SIZE
            command_timeout = settings.database.DB_COMMAND_TIMEOUT

        await log_info("Connecting to PostgreSQL...", type_msg=TypeMsg.INFO)

        self._pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
        )

        await log_info("PostgreSQL connection established", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            await log_info("PostgreSQL connection closed", type_msg=TypeMsg.INFO)

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[Connection, None]:
        """
        Borrow a connection from the pool.

        Example:
            async with db.acquire() as conn:
                rows = await conn.fetch("SELECT * FROM load_tracking")
        """
        async with self.pool.acquire() as connection:
            yield connection

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Connection, None]:
        """
        Connection inside a transaction.
        Commits on success, rolls back on error.
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                yield connection

    @retry_on_connection_error()
    async def execute(self, query: str, *args: Any) -> str:
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    @retry_on_connection_error()
    async def fetch(self, query: str, *args: Any) -> list[Record]:
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    @retry_on_connection_error()
    async def fetchrow(self, query: str, *args: Any) -> Record | None:
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    @retry_on_connection_error()
    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column)

    async def health_check(self) -> bool:
        """
        Check that the database answers.

        Returns:
            True if the connection works
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except Exception as e:
            await log_error(f"PostgreSQL health check failed: {e}")
            return False


async def init_db(db: DatabaseManager, database: DatabaseSettings | None = None) -> None:
    """
    Connect and apply the schema.

    Args:
        db: Manager to connect
        database: Connection settings (global config when None)
    """
    if database is None:
        from load_tracking.config import settings
        database = settings.database

    await db.connect(
        dsn=database.dsn,
        min_size=database.DB_MIN_POOL_SIZE,
        max_size=database.DB_MAX_POOL_SIZE,
        command_timeout=database.DB_COMMAND_TIMEOUT,
    )
    await log_info(
        f"PostgreSQL connected: {database.DB_HOST}:{database.DB_PORT}/{database.DB_NAME}",
        type_msg=TypeMsg.INFO,
    )

    await _init_schema(db)


async def _init_schema(db: DatabaseManager) -> None:
    """Apply migrations/init.sql."""
    from load_tracking.config.loader import get_project_root

    schema_path = get_project_root() / "migrations" / "init.sql"
    if not schema_path.exists():
        await log_error(f"Schema file not found: {schema_path}")
        return

    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()

        await log_info("Applying database schema...", type_msg=TypeMsg.INFO)

        # Several processes may start at once
        async with db.transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock($1)", SCHEMA_LOCK_ID)
            await conn.execute(schema_sql)

        await log_info("Database schema applied", type_msg=TypeMsg.INFO)
    except Exception as e:
        if "deadlock detected" in str(e) or "already exists" in str(e):
            await log_warning(f"Schema init raced with another process: {e}")
        else:
            await log_error(f"Schema init failed: {e}", exc_info=True)
            raise


async def close_db(db: DatabaseManager) -> None:
    await db.disconnect()
