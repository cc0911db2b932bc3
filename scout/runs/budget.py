"""
Per-run cost budget.

A task must hold a permit before it is dispatched. A permit reserves the
expected task cost; settling swaps the reservation for the billed cost. While
the run has not seen a priced task yet, permits are handed out one at a time:
each waits until the permit in flight settles, so later reservations use the
real per-task cost seen in this run rather than the configured estimate.
Once a permit is refused the budget stays exhausted.
"""

import asyncio
import logging
from typing import Optional

from ..errors import BudgetExhausted

logger = logging.getLogger(__name__)

_SLACK = 1e-9


class CostBudget:
    def __init__(self, limit: float, estimate: float = 0.0):
        self.limit = limit
        self.estimate = estimate
        self.committed = 0.0
        self.reserved = 0.0
        self.observed_max = 0.0
        self.in_flight = 0
        self.calibrated = False
        self.exhausted = False
        self.dispatched = 0
        self._cond: Optional[asyncio.Condition] = None

    def _get_cond(self) -> asyncio.Condition:
        # Created lazily so it binds to the loop that runs the coordinator
        if self._cond is None:
            self._cond = asyncio.Condition()
        return self._cond

    def _fits(self, reservation: float) -> bool:
        if self.committed >= self.limit - _SLACK:
            return False
        return self.committed + self.reserved + reservation <= self.limit + _SLACK

    async def acquire(self) -> float:
        """Reserve budget for one task. Raises BudgetExhausted when it does not fit."""
        cond = self._get_cond()
        async with cond:
            while not self.calibrated and self.in_flight and not self.exhausted:
                await cond.wait()
            if self.exhausted:
                raise BudgetExhausted(f"budget {self.limit} exhausted")

            reservation = max(self.estimate, self.observed_max)
            if not self._fits(reservation):
                self.exhausted = True
                cond.notify_all()
                logger.info(
                    f"Cost budget exhausted: committed={self.committed:.4f} "
                    f"reserved={self.reserved:.4f} next={reservation:.4f} limit={self.limit:.4f}"
                )
                raise BudgetExhausted(f"budget {self.limit} exhausted")

            self.reserved += reservation
            self.in_flight += 1
            self.dispatched += 1
            return reservation

    async def settle(self, reservation: float, actual: Optional[float]):
        """Replace a reservation with the billed cost (0 for undispatched or unbilled work)."""
        cond = self._get_cond()
        async with cond:
            self.reserved = max(0.0, self.reserved - reservation)
            self.in_flight = max(0, self.in_flight - 1)
            if actual:
                self.committed += actual
                self.observed_max = max(self.observed_max, actual)
            # A zero estimate says nothing about price until a task is billed
            if self.estimate > 0 or self.observed_max > 0:
                self.calibrated = True
            cond.notify_all()
