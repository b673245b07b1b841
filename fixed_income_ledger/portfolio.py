from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import (
    InsufficientBonds,
    InvalidAmount,
    InvariantViolation,
    NoPositionsToClose,
    OutOfOrderMaturity,
)
from .events import Event, EventLog, PositionClosed, PositionOpened, PositionUpdated
from .ledger import Position, PositionLedger, encode
from .utils import check_u128, to_timestamp

logger = logging.getLogger(__name__)


@dataclass
class PortfolioState:
    """
    Open bond positions plus the running ``total_bonds`` accumulator.

    Owned by the strategy; accounting functions below take it by reference.
    """
    ledger: PositionLedger = field(default_factory=PositionLedger)
    total_bonds: int = 0
    events: EventLog = field(default_factory=EventLog)

    def snapshot(self) -> Tuple[PositionLedger, int, int]:
        return self.ledger.copy(), self.total_bonds, self.events.mark()

    def restore(self, snap: Tuple[PositionLedger, int, int]) -> None:
        ledger, total_bonds, mark = snap
        self.ledger = ledger.copy()
        self.total_bonds = total_bonds
        self.events.truncate(mark)

    def positions(self) -> List[Position]:
        return list(self.ledger)


# ---------- Public reads ----------

def get_position_count(state: PortfolioState) -> int:
    return state.ledger.length()


def get_position(state: PortfolioState, index: int) -> Position:
    return state.ledger.at(index)


def total_bonds(state: PortfolioState) -> int:
    return state.total_bonds


def is_matured(position: Position, now: int) -> bool:
    return position.maturity_time <= now


def has_matured_positions(state: PortfolioState, now: int) -> bool:
    return len(state.ledger) > 0 and is_matured(state.ledger.front(), now)


# ---------- Mutations ----------

def handle_open_position(state: PortfolioState, maturity_time: int, bond_amount: int) -> Event:
    """
    Record ``bond_amount`` bonds maturing at ``maturity_time``.

    Opens only ever touch the back of the ledger: a maturity equal to the
    latest one merges into it, a later one is appended.
    """
    check_u128(maturity_time, "maturity_time")
    check_u128(bond_amount, "bond_amount")
    if bond_amount == 0:
        raise InvalidAmount("cannot open a position with zero bonds")

    ledger = state.ledger
    event: Event

    if len(ledger) > 0 and maturity_time <= ledger.back().maturity_time:
        back = ledger.back()
        if maturity_time < back.maturity_time:
            raise OutOfOrderMaturity(maturity_time, back.maturity_time)

        new_amount = back.bond_amount + bond_amount
        word = encode(maturity_time, new_amount)  # raises on u128 overflow before mutating
        ledger.pop_back()
        ledger.push_back(word)
        event = PositionUpdated(maturity_time, new_amount, len(ledger) - 1)
    else:
        ledger.push_back(encode(maturity_time, bond_amount))
        event = PositionOpened(maturity_time, bond_amount, len(ledger) - 1)

    state.total_bonds += bond_amount
    state.events.emit(event)
    logger.debug("open maturity=%s bonds=%s total_bonds=%s", maturity_time, bond_amount, state.total_bonds)
    return event


def handle_close_position(state: PortfolioState, bond_amount_closed: Optional[int] = None) -> Event:
    """
    Close bonds from the front (earliest maturity) position.

    ``bond_amount_closed=None`` closes the whole front position.
    """
    ledger = state.ledger
    if len(ledger) == 0:
        raise NoPositionsToClose("no positions to close")

    front = ledger.front()
    if bond_amount_closed is None:
        bond_amount_closed = front.bond_amount

    check_u128(bond_amount_closed, "bond_amount_closed")
    if bond_amount_closed == 0:
        raise InvalidAmount("cannot close zero bonds")
    if bond_amount_closed > front.bond_amount:
        raise InsufficientBonds(bond_amount_closed, front.bond_amount)

    event: Event
    ledger.pop_front()
    if bond_amount_closed == front.bond_amount:
        event = PositionClosed(front.maturity_time)
    else:
        remaining = front.bond_amount - bond_amount_closed
        ledger.push_front(encode(front.maturity_time, remaining))
        event = PositionUpdated(front.maturity_time, remaining, 0)

    state.total_bonds -= bond_amount_closed
    state.events.emit(event)
    logger.debug(
        "close maturity=%s bonds=%s total_bonds=%s",
        front.maturity_time,
        bond_amount_closed,
        state.total_bonds,
    )
    return event


def close_full(state: PortfolioState) -> Event:
    return handle_close_position(state, None)


def close_partial(state: PortfolioState, bond_amount: int) -> Event:
    return handle_close_position(state, bond_amount)


# ---------- QC ----------

def check_invariants(state: PortfolioState) -> None:
    positions = state.positions()

    for i, p in enumerate(positions):
        if p.bond_amount <= 0:
            raise InvariantViolation(f"position {i} at maturity {p.maturity_time} holds no bonds")

    for i in range(len(positions) - 1):
        if positions[i].maturity_time >= positions[i + 1].maturity_time:
            raise InvariantViolation(
                f"maturities not strictly ascending at index {i}: "
                f"{positions[i].maturity_time} >= {positions[i + 1].maturity_time}"
            )

    held = sum(p.bond_amount for p in positions)
    if held != state.total_bonds:
        raise InvariantViolation(f"total_bonds={state.total_bonds} but positions hold {held}")


def qc_flags_for_position(position: Position, now: int) -> List[str]:
    flags: List[str] = []

    if is_matured(position, now):
        flags.append("MATURED")

    return flags


def positions_frame(state: PortfolioState, now: Optional[int] = None) -> pd.DataFrame:
    """One row per open position, front to back."""
    rows = []
    for i, p in enumerate(state.ledger):
        flags = qc_flags_for_position(p, now) if now is not None else []
        rows.append((i, p.maturity_time, to_timestamp(p.maturity_time), p.bond_amount, "|".join(flags)))

    out = pd.DataFrame(rows, columns=["index", "maturity_time", "maturity", "bond_amount", "flags"])
    out["bond_amount"] = out["bond_amount"].astype(object)
    return out


# ---------- Valuation ----------

def price_positions(state: PortfolioState, market) -> pd.DataFrame:
    """
    Value every position with its own close preview.

    Each maturity is quoted separately; pricing the whole book at an average
    maturity misprices the positions furthest from it.
    """
    now = market.now()
    out = positions_frame(state, now)

    proceeds = [int(market.preview_close_position(p.maturity_time, p.bond_amount)) for p in state.ledger]
    out["estimated_proceeds"] = pd.Series(proceeds, index=out.index, dtype=object)

    amounts = np.array([float(p.bond_amount) for p in state.ledger], dtype=float)
    values = np.array([float(v) for v in proceeds], dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        out["price_per_bond"] = np.where(amounts > 0, values / amounts, np.nan)

    return out


def portfolio_value(state: PortfolioState, market) -> int:
    return sum(
        int(market.preview_close_position(p.maturity_time, p.bond_amount)) for p in state.ledger
    )
