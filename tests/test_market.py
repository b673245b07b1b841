import math

import pytest

from fixed_income_ledger.errors import SlippageExceeded
from fixed_income_ledger.market import MarketError, SimulatedBondMarket
from fixed_income_ledger.utils import SECONDS_PER_DAY

WAD = 10**18
DAY = SECONDS_PER_DAY


@pytest.fixture
def market():
    return SimulatedBondMarket(now=10 * DAY + 3_600, fixed_rate=0.05, position_duration=365 * DAY)


def test_maturities_align_to_checkpoints(market):
    m1, _ = market.open_position(10 * WAD, 0, 0.0)
    market.advance(3_600)
    m2, _ = market.open_position(10 * WAD, 0, 0.0)
    market.advance(DAY)
    m3, _ = market.open_position(10 * WAD, 0, 0.0)

    assert m1 == m2 == 10 * DAY + 365 * DAY, "opens inside one checkpoint share a maturity"
    assert m3 == m1 + DAY


def test_open_prices_at_discount(market):
    maturity, bonds = market.open_position(10 * WAD, 0, 0.0)
    tau = (maturity - market.now()) / DAY / 365.0
    assert bonds == pytest.approx(10 * WAD * math.exp(0.05 * tau), rel=1e-12)
    assert bonds > 10 * WAD


def test_matured_bonds_redeem_at_face(market):
    assert market.preview_close_position(market.now(), 7 * WAD) == 7 * WAD
    assert market.preview_close_position(market.now() - DAY, 7 * WAD + 1) == 7 * WAD + 1


def test_preview_zero_bonds(market):
    assert market.preview_close_position(market.now() + DAY, 0) == 0


def test_minimum_transaction_amount_enforced(market):
    with pytest.raises(MarketError):
        market.open_position(market.minimum_transaction_amount - 1, 0, 0.0)
    with pytest.raises(MarketError):
        market.close_position(market.now(), market.minimum_transaction_amount - 1, 0)


def test_slippage_guards(market):
    _, bonds = market.preview_open_position(10 * WAD)
    with pytest.raises(SlippageExceeded):
        market.open_position(10 * WAD, bonds + 1, 0.0)
    with pytest.raises(SlippageExceeded):
        market.open_position(10 * WAD, 0, market.share_price + 0.01)
    with pytest.raises(SlippageExceeded):
        market.close_position(market.now(), 10 * WAD, 10 * WAD + 1)


def test_price_impact_hurts_larger_trades():
    market = SimulatedBondMarket(now=0, price_impact=0.05, liquidity=1_000 * WAD)
    maturity = 100 * DAY
    small = market.preview_close_position(maturity, 10 * WAD) / (10 * WAD)
    large = market.preview_close_position(maturity, 500 * WAD) / (500 * WAD)
    assert large < small


def test_fail_next_targets_method(market):
    market.fail_next(method="close_position")
    market.preview_close_position(market.now(), WAD)
    with pytest.raises(MarketError):
        market.close_position(market.now(), WAD, 0)
    assert market.close_position(market.now(), WAD, 0) == WAD, "failure is one-shot"


def test_clock_only_moves_forward(market):
    with pytest.raises(ValueError):
        market.advance(-1)
    with pytest.raises(ValueError):
        market.set_time(market.now() - 1)
