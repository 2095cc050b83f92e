"""
Database connection pool.

Repositories go through system_conn(). The document store adapter
(engine.kernel.postgres_storage) takes the pool itself, because it holds
a dedicated LISTEN connection for change notifications.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from uuid import UUID

import asyncpg

from backend import config

pool: asyncpg.Pool | None = None


async def init_pool() -> asyncpg.Pool:
    """
    Initialize the connection pool.
    Called once at application startup.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=config.settings.DATABASE_URL,
        min_size=2,
        max_size=20,
        command_timeout=60,
        init=_init_connection,
    )
    return pool


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


def get_pool() -> asyncpg.Pool:
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return pool


async def _init_connection(conn: asyncpg.Connection) -> None:
    """
    Initialize each new connection.
    Documents are stored as jsonb and come back as plain dicts.
    """
    await conn.set_type_codec(
        "uuid",
        encoder=str,
        decoder=lambda x: UUID(x),
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "json",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


@asynccontextmanager
async def system_conn():
    """
    Acquire a pooled connection inside a transaction.

    Usage:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE email = $1", email)

    Yields:
        asyncpg.Connection
    """
    async with get_pool().acquire() as conn:
        async with conn.transaction():
            yield conn
