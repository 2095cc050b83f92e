"""User models for authentication and AI usage."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr

from engine.kernel.types import AIUsage, Identity

Plan = Literal["free", "pro_sprint", "pro_monthly"]


class User(BaseModel):
    """Core user model. Represents a row in the users table."""

    id: UUID
    email: EmailStr
    name: str | None = None
    plan: Plan = "free"
    ai_usage_count: int = 0
    ai_usage_reset_at: datetime
    created_at: datetime

    def identity(self) -> Identity:
        return Identity(account_id=str(self.id), email=self.email, display_name=self.name)


class AIUsagePublic(BaseModel):
    count: int
    limit: int
    remaining: int

    @classmethod
    def from_usage(cls, usage: AIUsage) -> AIUsagePublic:
        return cls(count=usage.count, limit=usage.limit, remaining=usage.remaining)


class UserPublic(BaseModel):
    """What the API returns."""

    id: UUID
    email: EmailStr
    name: str | None
    handle: str
    plan: Plan
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserPublic:
        """Convert internal User model to public API response."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            handle=user.identity().handle,
            plan=user.plan,
            created_at=user.created_at,
        )
