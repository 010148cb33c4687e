"""Spend limits checked before any model call."""

import logging
from dataclasses import dataclass
from datetime import datetime

from parley.config.schema import BudgetConfig
from parley.routing.types import BudgetState
from parley.store.base import DocumentStore
from parley.store.schema import utcnow

logger = logging.getLogger(__name__)

BLOCKED_MESSAGE = (
    "I'm unable to respond right now. {reason} Please check your budget settings or try again later."
)


@dataclass
class BudgetCheck:
    """Result of a budget check."""

    allowed: bool = True
    reason: str | None = None
    suggested_model: str | None = None
    remaining_usd: float | None = None
    daily_spend: float = 0.0
    monthly_spend: float = 0.0

    def to_state(self) -> BudgetState:
        """The budget signal passed to model routing."""
        return BudgetState(
            allowed=self.allowed,
            suggested_model=self.suggested_model,
            remaining_usd=self.remaining_usd,
        )

    def blocked_message(self) -> str:
        return BLOCKED_MESSAGE.format(reason=self.reason or "Budget limit reached.")


class BudgetChecker:
    """Compares a gateway's recorded spend with its daily and monthly limits."""

    def __init__(self, store: DocumentStore, config: BudgetConfig | None = None):
        self.store = store
        self.config = config or BudgetConfig()

    async def check(self, gateway_id: str, now: datetime | None = None) -> BudgetCheck:
        """Check a gateway's spend.

        With the ``block`` action a reached limit refuses the request; with
        ``warn`` it is only logged. Past the downgrade fraction of the monthly
        limit a cheaper model is suggested.

        Args:
            gateway_id: Gateway to check
            now: Current time (defaults to now)

        Returns:
            Budget check result
        """
        daily_limit = self.config.daily_limit_usd
        monthly_limit = self.config.monthly_limit_usd
        if daily_limit is None and monthly_limit is None:
            return BudgetCheck()

        today = (now or utcnow()).date().isoformat()
        month_start = f"{today[:7]}-01"
        records = await self.store.list_usage(gateway_id, since_date=month_start)
        daily_spend = sum(r.cost for r in records if r.date == today)
        monthly_spend = sum(r.cost for r in records)
        result = BudgetCheck(daily_spend=daily_spend, monthly_spend=monthly_spend)

        if daily_limit is not None and daily_spend >= daily_limit:
            reason = f"Daily budget exceeded (${daily_spend:.4f} / ${daily_limit:.2f})"
            if self.config.action == "block":
                result.allowed = False
                result.reason = reason
                return result
            logger.warning("Gateway %s: %s", gateway_id, reason)

        if monthly_limit is not None and monthly_spend >= monthly_limit:
            reason = f"Monthly budget exceeded (${monthly_spend:.4f} / ${monthly_limit:.2f})"
            if self.config.action == "block":
                result.allowed = False
                result.reason = reason
                return result
            logger.warning("Gateway %s: %s", gateway_id, reason)

        if monthly_limit is not None and monthly_spend >= monthly_limit * self.config.downgrade_fraction:
            result.suggested_model = self.config.downgrade_model

        remaining = [
            limit - spend
            for limit, spend in ((daily_limit, daily_spend), (monthly_limit, monthly_spend))
            if limit is not None
        ]
        result.remaining_usd = min(remaining) if remaining else None
        return result
