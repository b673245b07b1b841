from __future__ import annotations

import math
from fractions import Fraction
from typing import Union

import pandas as pd

U128_MAX = (1 << 128) - 1
U256_MAX = (1 << 256) - 1

SECONDS_PER_DAY = 86_400
BPS = 10_000


def yearfrac(start: int, end: int, convention: str = "ACT/365") -> float:
    """
    Year fraction between two unix timestamps (seconds) under a day count convention.

    Supported:
    - ACT/365, ACT/365F
    - ACT/360
    """
    convention = convention.upper().replace(" ", "")
    if end < start:
        raise ValueError(f"end < start: {start=} {end=}")

    days = (end - start) / SECONDS_PER_DAY

    if convention in ("ACT/365", "ACT/365F"):
        return days / 365.0

    if convention == "ACT/360":
        return days / 360.0

    raise ValueError(f"Unsupported day count convention: {convention}")


def to_timestamp(seconds: int) -> pd.Timestamp:
    """Unix seconds -> UTC pandas Timestamp; NaT beyond the datetime64 range."""
    try:
        return pd.Timestamp(int(seconds), unit="s", tz="UTC")
    except (OverflowError, pd.errors.OutOfBoundsDatetime):
        return pd.NaT


def latest_checkpoint(now: int, checkpoint_duration: int) -> int:
    """Most recent checkpoint boundary on or before ``now``."""
    if checkpoint_duration <= 0:
        raise ValueError("checkpoint_duration must be positive")
    return now - (now % checkpoint_duration)


def bps_of(amount: int, bps: int) -> int:
    """``amount * bps / 10_000`` rounded down."""
    return amount * bps // BPS


def check_u128(value: int, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0 or value > U128_MAX:
        raise ValueError(f"{name} outside u128 range: {value}")
    return value


Ratio = Union[int, float, Fraction]


def as_fraction(value: Ratio) -> Fraction:
    """Exact decimal value of ``value`` (floats are read from their shortest repr)."""
    if isinstance(value, Fraction):
        return value
    return Fraction(str(value))


def mul_down(amount: int, factor: Ratio) -> int:
    return math.floor(amount * as_fraction(factor))


def mul_up(amount: int, factor: Ratio) -> int:
    return math.ceil(amount * as_fraction(factor))
