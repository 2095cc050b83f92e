"""
Repository layer for Folio.

SQL for users lives here. Portfolio documents go through
engine.kernel.postgres_storage (the DocumentStore seam).
"""

from backend.repos.user_repo import UserRepo

__all__ = [
    "UserRepo",
]
