from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

import pandas as pd

from .config import RebalanceConfig, RebalanceOptions
from .errors import (
    ExternalCallFailure,
    InvalidAmount,
    PortfolioError,
    ReentrancyError,
    SlippageExceeded,
)
from .events import Event, Rebalanced, event_to_dict
from .ledger import Position
from .market import BondMarket
from .portfolio import (
    PortfolioState,
    check_invariants,
    get_position,
    get_position_count,
    handle_close_position,
    handle_open_position,
    has_matured_positions,
    price_positions,
)
from .pricing import (
    apply_closure_buffer,
    apply_slippage,
    bonds_for_target_proceeds,
    check_price_deviation,
    price_per_bond,
)
from .utils import bps_of

logger = logging.getLogger(__name__)


@dataclass
class RebalanceReport:
    matured_closed: int = 0
    shortfall_closed: int = 0
    partial_closes: int = 0
    proceeds: int = 0
    freed: int = 0
    deployed: int = 0
    opened: Optional[Position] = None
    events: List[Event] = field(default_factory=list)

    @property
    def acted(self) -> bool:
        return bool(self.events) or self.freed > 0

    def to_dict(self) -> dict:
        return {
            "matured_closed": self.matured_closed,
            "shortfall_closed": self.shortfall_closed,
            "partial_closes": self.partial_closes,
            "proceeds": self.proceeds,
            "freed": self.freed,
            "deployed": self.deployed,
            "opened": None if self.opened is None else (self.opened.maturity_time, self.opened.bond_amount),
            "events": [event_to_dict(e) for e in self.events],
        }


class Rebalancer:
    """
    Keeper-driven policy over a bond position ledger.

    Each public mutation runs as one transaction: on any exception the
    ledger, ``total_bonds``, emitted events and the idle balance are restored
    and the exception propagates. Every ledger mutation for a trade is done
    before the next external market call.
    """

    def __init__(
        self,
        market: BondMarket,
        config: Optional[RebalanceConfig] = None,
        *,
        portfolio: Optional[PortfolioState] = None,
        idle: int = 0,
    ) -> None:
        if idle < 0:
            raise InvalidAmount("idle balance cannot be negative")
        self.market = market
        self.config = config or RebalanceConfig()
        self.portfolio = portfolio or PortfolioState()
        self.idle = int(idle)
        self._entered = False

    # ---------- reads ----------

    def get_position_count(self) -> int:
        return get_position_count(self.portfolio)

    def get_position(self, index: int) -> Position:
        return get_position(self.portfolio, index)

    def total_bonds(self) -> int:
        return self.portfolio.total_bonds

    def has_matured_positions(self) -> bool:
        return has_matured_positions(self.portfolio, self.market.now())

    @property
    def minimum_transaction_amount(self) -> int:
        if self.config.minimum_transaction_amount is not None:
            return self.config.minimum_transaction_amount
        return int(self.market.minimum_transaction_amount)

    def portfolio_value(self) -> int:
        """Sum of per-position close previews."""
        return sum(self._preview(p.maturity_time, p.bond_amount) for p in self.portfolio.ledger)

    def total_assets(self) -> int:
        return self.idle + self.portfolio_value()

    def target_idle_liquidity(self) -> int:
        return bps_of(self.total_assets(), self.config.target_idle_liquidity_bps)

    def max_idle_liquidity(self) -> int:
        return bps_of(self.total_assets(), self.config.effective_max_idle_liquidity_bps)

    def valuation_frame(self) -> pd.DataFrame:
        return price_positions(self.portfolio, self.market)

    def can_rebalance(self, requested_withdrawal: int = 0) -> bool:
        if self.has_matured_positions():
            return True
        if requested_withdrawal > self.idle and self.get_position_count() > 0:
            return True
        return self._deployable_amount() > 0

    # ---------- mutations ----------

    def deposit(self, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("deposit amount must be positive")
        with self._non_reentrant():
            self.idle += int(amount)
        logger.info("deposit amount=%s idle=%s", amount, self.idle)

    def rebalance(
        self,
        options: Optional[RebalanceOptions] = None,
        *,
        requested_withdrawal: int = 0,
    ) -> RebalanceReport:
        """
        1. close matured positions (up to the closure limit)
        2. close from the front to cover ``requested_withdrawal``, then pay it out
        3. open a new position with idle capital above the target
        """
        if requested_withdrawal < 0:
            raise InvalidAmount("requested_withdrawal cannot be negative")
        options = options or RebalanceOptions()
        report = RebalanceReport()

        with self._non_reentrant(), self._transaction() as mark:
            limit = options.position_closure_limit or self.config.position_closure_limit
            self._close_matured_positions(limit, options, report)

            if requested_withdrawal > self.idle:
                self._close_for_shortfall(requested_withdrawal - self.idle, options, report)
            report.freed = self._pay_out(requested_withdrawal)

            self._deploy_idle(options, report)
            check_invariants(self.portfolio)

            report.events = self.portfolio.events.since(mark)
            if report.acted:
                self.portfolio.events.emit(Rebalanced())
                report.events = self.portfolio.events.since(mark)

        if report.acted:
            logger.info("rebalanced %s", {k: v for k, v in report.to_dict().items() if k != "events"})
        else:
            logger.debug("rebalance: nothing to do")
        return report

    def free_funds(self, amount: int, options: Optional[RebalanceOptions] = None) -> int:
        """Raise ``amount`` of liquidity, closing positions front to back if idle falls short."""
        if amount < 0:
            raise InvalidAmount("amount cannot be negative")
        options = options or RebalanceOptions()
        report = RebalanceReport()

        with self._non_reentrant(), self._transaction():
            if amount > self.idle:
                self._close_for_shortfall(amount - self.idle, options, report)
            freed = self._pay_out(amount)
            check_invariants(self.portfolio)

        logger.info("free_funds requested=%s freed=%s closed=%s", amount, freed, report.shortfall_closed)
        return freed

    # ---------- transaction plumbing ----------

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        if self._entered:
            raise ReentrancyError("rebalancer re-entered during an external call")
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    @contextmanager
    def _transaction(self) -> Iterator[int]:
        snap = self.portfolio.snapshot()
        idle = self.idle
        try:
            yield snap[2]
        except Exception as exc:
            self.portfolio.restore(snap)
            self.idle = idle
            logger.warning("rolled back after %s: %s", type(exc).__name__, exc)
            raise
        self.portfolio.events.publish()

    def _call(self, method: str, *args):
        try:
            return getattr(self.market, method)(*args)
        except PortfolioError:
            raise
        except Exception as exc:
            raise ExternalCallFailure(f"{method}{args} failed: {exc}") from exc

    def _preview(self, maturity_time: int, bond_amount: int) -> int:
        return int(self._call("preview_close_position", maturity_time, bond_amount))

    def _close_slippage(self, options: RebalanceOptions) -> float:
        if options.close_slippage_tolerance is not None:
            return options.close_slippage_tolerance
        return self.config.close_slippage_tolerance

    # ---------- steps ----------

    def _close_front(self, bond_amount: int, expected: int, options: RebalanceOptions, report: RebalanceReport) -> int:
        front = self.portfolio.ledger.front()
        min_output = apply_slippage(expected, self._close_slippage(options))

        handle_close_position(self.portfolio, bond_amount)
        proceeds = int(self._call("close_position", front.maturity_time, bond_amount, min_output))
        if proceeds < min_output:
            raise SlippageExceeded(f"close returned {proceeds}, minimum {min_output}")

        self.idle += proceeds
        report.proceeds += proceeds
        return proceeds

    def _close_matured_positions(self, limit: int, options: RebalanceOptions, report: RebalanceReport) -> None:
        now = self.market.now()
        while report.matured_closed < limit and has_matured_positions(self.portfolio, now):
            front = self.portfolio.ledger.front()
            expected = self._preview(front.maturity_time, front.bond_amount)
            self._close_front(front.bond_amount, expected, options, report)
            report.matured_closed += 1

    def _close_for_shortfall(self, target: int, options: RebalanceOptions, report: RebalanceReport) -> int:
        """
        Close positions strictly front to back until ``target`` is raised.

        Every quote is for the position being closed. A partial close is sized
        by root solve, padded by the closure buffer, and rejected if its quote
        drifts from the solved size's price by more than the buffer. A partial
        close whose remainder would be worth less than the minimum transaction
        amount becomes a full close.
        """
        ledger = self.portfolio.ledger
        min_tx = self.minimum_transaction_amount
        buffer = self.config.partial_closure_buffer
        raised = 0

        while raised < target and len(ledger) > 0:
            front = ledger.front()
            needed = target - raised
            full_value = self._preview(front.maturity_time, front.bond_amount)

            bonds, quote = front.bond_amount, full_value
            if full_value > needed:
                sized = bonds_for_target_proceeds(self._preview, front.maturity_time, front.bond_amount, needed)
                reference = price_per_bond(self._preview(front.maturity_time, sized), sized)
                bonds = apply_closure_buffer(sized, buffer, front.bond_amount)
                bonds = min(max(bonds, min_tx), front.bond_amount)

                if bonds < front.bond_amount:
                    # the executed size must price like the size it was solved for
                    quote = self._preview(front.maturity_time, bonds)
                    check_price_deviation(price_per_bond(quote, bonds), reference, buffer, front.maturity_time)
                    residual = self._preview(front.maturity_time, front.bond_amount - bonds)
                    if residual < min_tx:
                        bonds, quote = front.bond_amount, full_value

            raised += self._close_front(bonds, quote, options, report)
            report.shortfall_closed += 1
            if bonds < front.bond_amount:
                report.partial_closes += 1

        return raised

    def _pay_out(self, amount: int) -> int:
        freed = min(amount, self.idle)
        self.idle -= freed
        return freed

    def _deployable_amount(self) -> int:
        total = self.total_assets()
        target = bps_of(total, self.config.target_idle_liquidity_bps)
        max_idle = bps_of(total, self.config.effective_max_idle_liquidity_bps)
        excess = self.idle - target
        if self.idle <= max_idle or excess <= self.minimum_transaction_amount:
            return 0
        return excess

    def _deploy_idle(self, options: RebalanceOptions, report: RebalanceReport) -> None:
        amount = self._deployable_amount()
        if amount == 0:
            return

        self.idle -= amount
        maturity_time, bonds = self._call("open_position", amount, options.min_output, options.min_price)
        if bonds < options.min_output:
            raise SlippageExceeded(f"open returned {bonds} bonds, minimum {options.min_output}")

        handle_open_position(self.portfolio, int(maturity_time), int(bonds))
        report.deployed = amount
        report.opened = Position(int(maturity_time), int(bonds))
