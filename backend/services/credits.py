"""AI credit checks backed by the users table."""

from __future__ import annotations

import logging
from uuid import UUID

from backend.repos.user_repo import UserRepo
from engine.kernel.storage import CreditChecker
from engine.kernel.types import AIUsage

logger = logging.getLogger(__name__)


class UserCreditChecker(CreditChecker):
    def __init__(self, user_repo: UserRepo | None = None) -> None:
        self.user_repo = user_repo or UserRepo()

    async def usage(self, account_id: str) -> AIUsage:
        usage = await self.user_repo.get_ai_usage(UUID(account_id))
        # Unknown accounts get no credit
        return usage if usage is not None else AIUsage(count=0, limit=0)

    async def reserve_credit(self, account_id: str) -> bool:
        # usage() applies the monthly reset and resolves the plan limit
        usage = await self.usage(account_id)
        if usage.exhausted:
            return False
        taken = await self.user_repo.consume_ai_credit(UUID(account_id), usage.limit)
        if not taken:
            logger.info("credits: %s hit the limit of %d", account_id, usage.limit)
        return taken

    async def release_credit(self, account_id: str) -> None:
        await self.user_repo.refund_ai_credit(UUID(account_id))


credit_checker = UserCreditChecker()


def get_credit_checker() -> CreditChecker:
    return credit_checker
