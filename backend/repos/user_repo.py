"""Repository for user operations."""

from __future__ import annotations

from uuid import UUID

import asyncpg

from backend.config import settings
from backend.db import system_conn
from backend.models.user import User
from engine.kernel.types import AIUsage


def _row_to_user(row: asyncpg.Record) -> User:
    """Convert a database row to a User model."""
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        plan=row["plan"],
        ai_usage_count=row["ai_usage_count"],
        ai_usage_reset_at=row["ai_usage_reset_at"],
        created_at=row["created_at"],
    )


class UserRepo:
    """All user-related database operations."""

    async def get_by_email(self, email: str) -> User | None:
        """
        Get a user by email address.

        Args:
            email: Email address to look up

        Returns:
            User if found, None otherwise
        """
        async with system_conn() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM users WHERE email = $1",
                email,
            )
            return _row_to_user(row) if row else None

    async def create(self, email: str, name: str | None = None) -> User:
        """
        Create a new user.

        Args:
            email: Email address for the new user
            name: Optional display name

        Returns:
            Newly created User
        """
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO users (email, name)
                VALUES ($1, $2)
                RETURNING *
                """,
                email,
                name,
            )
            return _row_to_user(row)

    async def get(self, user_id: UUID) -> User | None:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
            return _row_to_user(row) if row else None

    async def find_id_by_handle(self, handle: str) -> UUID | None:
        """
        Find the account whose email local part equals handle.

        Linear scan over every user; there is no handle column or index.
        Fine at current population. First match wins.
        """
        async with system_conn() as conn:
            rows = await conn.fetch("SELECT id, email FROM users ORDER BY created_at")
        for row in rows:
            local = row["email"].split("@", 1)[0]
            if local == handle:
                return row["id"]
        return None

    async def get_ai_usage(self, user_id: UUID) -> AIUsage | None:
        """
        Current month's AI usage.

        Resets the counter when the calendar month has rolled over since the
        last reset. The limit always comes from the user's plan.
        """
        async with system_conn() as conn:
            row = await conn.fetchrow(
                """
                UPDATE users
                SET ai_usage_count = CASE
                        WHEN date_trunc('month', ai_usage_reset_at) < date_trunc('month', now()) THEN 0
                        ELSE ai_usage_count
                    END,
                    ai_usage_reset_at = CASE
                        WHEN date_trunc('month', ai_usage_reset_at) < date_trunc('month', now()) THEN now()
                        ELSE ai_usage_reset_at
                    END
                WHERE id = $1
                RETURNING plan, ai_usage_count
                """,
                user_id,
            )
        if row is None:
            return None
        return AIUsage(count=row["ai_usage_count"], limit=settings.ai_limit_for(row["plan"]))

    async def consume_ai_credit(self, user_id: UUID, limit: int) -> bool:
        """
        Count one AI generation if the account is still under limit.

        A single conditional UPDATE, so concurrent requests can never push
        the counter past the limit.

        Returns:
            True if a credit was taken
        """
        async with system_conn() as conn:
            new_count = await conn.fetchval(
                """
                UPDATE users SET ai_usage_count = ai_usage_count + 1
                WHERE id = $1 AND ai_usage_count < $2
                RETURNING ai_usage_count
                """,
                user_id,
                limit,
            )
            return new_count is not None

    async def refund_ai_credit(self, user_id: UUID) -> None:
        """Give back one AI generation after a failed attempt."""
        async with system_conn() as conn:
            await conn.execute(
                "UPDATE users SET ai_usage_count = GREATEST(ai_usage_count - 1, 0) WHERE id = $1",
                user_id,
            )
