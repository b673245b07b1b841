from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional, Protocol, Tuple

import numpy as np

from .errors import SlippageExceeded
from .utils import SECONDS_PER_DAY, latest_checkpoint, yearfrac

logger = logging.getLogger(__name__)


class BondMarket(Protocol):
    """Primitives the rebalancer consumes from a fixed-rate bond market."""

    minimum_transaction_amount: int

    def now(self) -> int:
        ...

    def open_position(self, amount: int, min_output: int, min_price: float) -> Tuple[int, int]:
        """
        Spend ``amount``; returns ``(maturity_time, bond_amount)``.

        Must reject the trade when fewer than ``min_output`` bonds would be
        received or the yield source share price is below ``min_price``.
        """
        ...

    def close_position(self, maturity_time: int, bond_amount: int, min_output: int) -> int:
        """Sell ``bond_amount`` bonds maturing at ``maturity_time``; returns proceeds."""
        ...

    def preview_close_position(self, maturity_time: int, bond_amount: int) -> int:
        ...


class MarketError(Exception):
    """Raised by the simulated market when it rejects a trade."""


class SimulatedBondMarket:
    """
    Deterministic bond market for tests and scenario runs.

    - Bonds pay 1 unit at maturity; before maturity they trade at
      exp(-fixed_rate * tau), tau on ACT/365.
    - New positions mature at latest_checkpoint(now) + position_duration, so
      every open within one checkpoint lands on the same maturity.
    - Optional linear price impact: buys pay more, sells receive less, in
      proportion to trade size / liquidity.
    - ``min_price`` guards the yield source share price (``share_price``).
    """

    def __init__(
        self,
        *,
        now: int = 0,
        fixed_rate: float = 0.05,
        position_duration: int = 365 * SECONDS_PER_DAY,
        checkpoint_duration: int = SECONDS_PER_DAY,
        minimum_transaction_amount: int = 1_000,
        price_impact: float = 0.0,
        liquidity: int = 10**24,
        share_price: float = 1.0,
        day_count: str = "ACT/365",
    ) -> None:
        if position_duration % checkpoint_duration != 0:
            raise ValueError("position_duration must be a multiple of checkpoint_duration")
        self._now = int(now)
        self.fixed_rate = float(fixed_rate)
        self.position_duration = int(position_duration)
        self.checkpoint_duration = int(checkpoint_duration)
        self.minimum_transaction_amount = int(minimum_transaction_amount)
        self.price_impact = float(price_impact)
        self.liquidity = int(liquidity)
        self.share_price = float(share_price)
        self.day_count = day_count

        self.calls: List[Tuple[str, tuple]] = []
        self.before_trade: Optional[Callable[[str], None]] = None
        self._fail_next: Optional[Tuple[Optional[str], Exception]] = None

    # ---------- clock ----------

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        self._now += int(seconds)
        return self._now

    def set_time(self, now: int) -> None:
        if now < self._now:
            raise ValueError("cannot move the clock backwards")
        self._now = int(now)

    # ---------- failure injection ----------

    def fail_next(self, exc: Optional[Exception] = None, method: Optional[str] = None) -> None:
        """Make the next call (optionally only of ``method``) raise ``exc``."""
        self._fail_next = (method, exc or MarketError("market call reverted"))

    def _enter(self, method: str, args: tuple) -> None:
        self.calls.append((method, args))
        if self._fail_next is not None:
            target, exc = self._fail_next
            if target is None or target == method:
                self._fail_next = None
                raise exc
        if self.before_trade is not None and method in ("open_position", "close_position"):
            self.before_trade(method)

    # ---------- pricing ----------

    def next_maturity_time(self) -> int:
        return latest_checkpoint(self._now, self.checkpoint_duration) + self.position_duration

    def spot_price(self, maturity_time: int) -> float:
        if maturity_time <= self._now:
            return 1.0
        tau = yearfrac(self._now, maturity_time, self.day_count)
        return float(np.exp(-self.fixed_rate * tau))

    def _impact(self, size: int) -> float:
        if self.price_impact == 0.0:
            return 0.0
        return self.price_impact * min(size / self.liquidity, 1.0)

    def preview_open_position(self, amount: int) -> Tuple[int, int]:
        maturity_time = self.next_maturity_time()
        price = self.spot_price(maturity_time) * (1.0 + self._impact(amount))
        return maturity_time, int(math.floor(amount / price))

    def preview_close_position(self, maturity_time: int, bond_amount: int) -> int:
        self._enter("preview_close_position", (maturity_time, bond_amount))
        return self._quote_close(maturity_time, bond_amount)

    def _quote_close(self, maturity_time: int, bond_amount: int) -> int:
        if bond_amount <= 0:
            return 0
        price = self.spot_price(maturity_time)
        if maturity_time > self._now:
            price *= max(1.0 - self._impact(bond_amount), 0.0)
        if price >= 1.0:
            # face value, kept exact for amounts beyond float precision
            return bond_amount
        return int(math.floor(bond_amount * price))

    # ---------- trading ----------

    def open_position(self, amount: int, min_output: int, min_price: float) -> Tuple[int, int]:
        self._enter("open_position", (amount, min_output, min_price))
        if amount < self.minimum_transaction_amount:
            raise MarketError(f"amount {amount} below minimum transaction amount {self.minimum_transaction_amount}")
        if self.share_price < min_price:
            raise SlippageExceeded(f"share price {self.share_price} below minimum {min_price}")

        maturity_time, bonds = self.preview_open_position(amount)
        if bonds < min_output:
            raise SlippageExceeded(f"open would return {bonds} bonds, minimum {min_output}")

        logger.debug("market open amount=%s maturity=%s bonds=%s", amount, maturity_time, bonds)
        return maturity_time, bonds

    def close_position(self, maturity_time: int, bond_amount: int, min_output: int) -> int:
        self._enter("close_position", (maturity_time, bond_amount, min_output))
        if bond_amount < self.minimum_transaction_amount:
            raise MarketError(
                f"bond amount {bond_amount} below minimum transaction amount {self.minimum_transaction_amount}"
            )

        proceeds = self._quote_close(maturity_time, bond_amount)
        if proceeds < min_output:
            raise SlippageExceeded(f"close would return {proceeds}, minimum {min_output}")

        logger.debug("market close maturity=%s bonds=%s proceeds=%s", maturity_time, bond_amount, proceeds)
        return proceeds
