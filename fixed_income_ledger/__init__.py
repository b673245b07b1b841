"""
Fixed Income Position Ledger

Modules:
- ledger: packed position words + double-ended position ledger
- portfolio: open/close/merge accounting over the ledger + per-position valuation
- rebalancer: keeper-driven close/open policy with atomic rollback
- pricing: slippage, price-deviation and closure sizing helpers
- market: bond market adapter protocol + simulated market
- config: rebalancing policy schemas + YAML loading
- scenarios: keeper schedule runner
- utils: time/unit helpers
"""

from .errors import (
    EmptyLedger,
    ExternalCallFailure,
    IndexOutOfRange,
    InsufficientBonds,
    InvalidAmount,
    InvariantViolation,
    NoPositionsToClose,
    OutOfOrderMaturity,
    PortfolioError,
    ReentrancyError,
    SlippageExceeded,
)
from .ledger import Position, PositionLedger, decode, encode
from .portfolio import PortfolioState, handle_close_position, handle_open_position, has_matured_positions
from .rebalancer import Rebalancer, RebalanceReport
from .config import RebalanceConfig, RebalanceOptions

__version__ = "0.1.0"
