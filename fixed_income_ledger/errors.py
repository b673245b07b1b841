"""Exception taxonomy for the position ledger and rebalancer.

Every error raised by the package derives from :class:`PortfolioError` so a
keeper can catch the whole family in one place. Nothing in the package
recovers from these locally; the rebalancer restores its snapshot and
re-raises.
"""

from __future__ import annotations

__all__ = [
    "PortfolioError",
    "IndexOutOfRange",
    "EmptyLedger",
    "OutOfOrderMaturity",
    "InsufficientBonds",
    "NoPositionsToClose",
    "InvalidAmount",
    "InvariantViolation",
    "SlippageExceeded",
    "ExternalCallFailure",
    "ReentrancyError",
]


class PortfolioError(Exception):
    """Base class for ledger, accounting and rebalancing failures."""


class IndexOutOfRange(PortfolioError, IndexError):
    def __init__(self, index: int, length: int) -> None:
        super().__init__(f"index {index} out of range for ledger of length {length}")
        self.index = index
        self.length = length


class EmptyLedger(PortfolioError, IndexError):
    """Pop or peek on a ledger with no entries."""


class OutOfOrderMaturity(PortfolioError, ValueError):
    def __init__(self, maturity_time: int, back_maturity_time: int) -> None:
        super().__init__(
            f"maturity {maturity_time} is earlier than latest position maturity {back_maturity_time}"
        )
        self.maturity_time = maturity_time
        self.back_maturity_time = back_maturity_time


class InsufficientBonds(PortfolioError, ValueError):
    def __init__(self, requested: int, available: int) -> None:
        super().__init__(f"cannot close {requested} bonds, front position holds {available}")
        self.requested = requested
        self.available = available


class NoPositionsToClose(PortfolioError):
    pass


class InvalidAmount(PortfolioError, ValueError):
    pass


class InvariantViolation(PortfolioError):
    pass


class SlippageExceeded(PortfolioError):
    """Market output or price fell outside the caller's bounds. Retriable."""


class ExternalCallFailure(PortfolioError):
    """A bond market adapter call failed; the enclosing operation is aborted."""


class ReentrancyError(PortfolioError):
    pass
