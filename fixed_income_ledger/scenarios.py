from __future__ import annotations

import pandas as pd

from .config import RebalanceOptions
from .rebalancer import Rebalancer


def make_schedule(
    steps: int,
    advance_seconds: int,
    deposit: int = 0,
    withdrawal: int = 0,
) -> pd.DataFrame:
    """Uniform keeper schedule: same clock step, deposit and withdrawal every row."""
    return pd.DataFrame(
        {
            "advance_seconds": [int(advance_seconds)] * steps,
            "deposit": pd.Series([int(deposit)] * steps, dtype=object),
            "withdrawal": pd.Series([int(withdrawal)] * steps, dtype=object),
        }
    )


def run_keeper_schedule(
    rebalancer: Rebalancer,
    market,
    schedule: pd.DataFrame,
    options: RebalanceOptions | None = None,
) -> pd.DataFrame:
    """
    Drive ``rebalancer`` through ``schedule``.

    Each row advances the market clock, deposits, then rebalances with the
    row's withdrawal request. Returns one row of state per step.
    """
    required = {"advance_seconds", "deposit", "withdrawal"}
    missing = required - set(schedule.columns)
    if missing:
        raise ValueError(f"schedule missing columns: {sorted(missing)}")

    rows = []
    for step, r in schedule.reset_index(drop=True).iterrows():
        market.advance(int(r["advance_seconds"]))

        deposit = int(r["deposit"])
        if deposit > 0:
            rebalancer.deposit(deposit)

        report = rebalancer.rebalance(options, requested_withdrawal=int(r["withdrawal"]))

        rows.append(
            {
                "step": step,
                "time": market.now(),
                "idle": rebalancer.idle,
                "total_bonds": rebalancer.total_bonds(),
                "position_count": rebalancer.get_position_count(),
                "portfolio_value": rebalancer.portfolio_value(),
                "freed": report.freed,
                "acted": report.acted,
            }
        )

    out = pd.DataFrame(rows)
    for col in ("idle", "total_bonds", "portfolio_value", "freed"):
        if col in out:
            out[col] = out[col].astype(object)
    return out
