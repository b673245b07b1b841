from __future__ import annotations

import math
from typing import Callable

from scipy.optimize import brentq

from .errors import SlippageExceeded
from .utils import as_fraction, mul_down, mul_up

PreviewFn = Callable[[int, int], int]


def apply_slippage(amount: int, tolerance: float) -> int:
    """
    Minimum acceptable output for an expected ``amount`` given a fractional
    tolerance (0.01 = 1%). Rounds down.
    """
    if not 0.0 <= tolerance <= 1.0:
        raise ValueError(f"slippage tolerance must be in [0, 1], got {tolerance}")
    return max(mul_down(amount, 1 - as_fraction(tolerance)), 0)


def price_per_bond(proceeds: int, bonds: int) -> float:
    if bonds <= 0:
        raise ValueError("bonds must be positive")
    return proceeds / bonds


def price_deviation(quote: float, reference: float) -> float:
    """Relative distance of ``quote`` from ``reference``."""
    if reference <= 0:
        raise ValueError("reference price must be positive")
    return abs(quote - reference) / reference


def check_price_deviation(quote: float, reference: float, buffer: float, maturity_time: int) -> None:
    deviation = price_deviation(quote, reference)
    if deviation > buffer:
        raise SlippageExceeded(
            f"quote {quote:.10f} for maturity {maturity_time} deviates {deviation:.6f} "
            f"from reference {reference:.10f} (buffer {buffer})"
        )


def apply_closure_buffer(bonds: int, buffer: float, cap: int) -> int:
    """Pad a partial closure by ``buffer`` so the proceeds still cover the target after rounding."""
    return min(mul_up(bonds, 1 + as_fraction(buffer)), cap)


def bonds_for_target_proceeds(
    preview: PreviewFn,
    maturity_time: int,
    max_bonds: int,
    target: int,
) -> int:
    """
    Smallest bond amount from the position at ``maturity_time`` whose close
    preview yields at least ``target``.

    Solves preview(b) = target with Brent's method on [1, max_bonds], then
    bisects on integers around the root for the exact boundary. Returns
    ``max_bonds`` when the whole position cannot cover the target.
    """
    if target <= 0:
        return 0
    if max_bonds <= 0:
        raise ValueError("max_bonds must be positive")

    if preview(maturity_time, max_bonds) <= target:
        return max_bonds
    if preview(maturity_time, 1) >= target:
        return 1

    def f(x: float) -> float:
        return float(preview(maturity_time, int(math.ceil(x)))) - float(target)

    root = brentq(f, 1.0, float(max_bonds), xtol=0.5, rtol=1e-12)

    # preview(lo) < target <= preview(hi); tighten to the root when it brackets
    lo, hi = 1, max_bonds
    guess_lo = max(int(math.floor(root * (1.0 - 1e-9))) - 1, 1)
    guess_hi = min(int(math.ceil(root * (1.0 + 1e-9))) + 1, max_bonds)
    if preview(maturity_time, guess_lo) < target:
        lo = guess_lo
    if preview(maturity_time, guess_hi) >= target:
        hi = guess_hi

    while hi - lo > 1:
        mid = (lo + hi) // 2
        if preview(maturity_time, mid) >= target:
            hi = mid
        else:
            lo = mid
    return hi
