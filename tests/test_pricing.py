import math

import pytest

from fixed_income_ledger.errors import SlippageExceeded
from fixed_income_ledger.market import SimulatedBondMarket
from fixed_income_ledger.pricing import (
    apply_closure_buffer,
    apply_slippage,
    bonds_for_target_proceeds,
    check_price_deviation,
    price_deviation,
    price_per_bond,
)
from fixed_income_ledger.utils import SECONDS_PER_DAY

WAD = 10**18


def test_apply_slippage_rounds_down():
    assert apply_slippage(1_000, 0.01) == 990
    assert apply_slippage(999, 0.5) == 499
    assert apply_slippage(1_000, 0.0) == 1_000
    assert apply_slippage(1_000, 1.0) == 0
    with pytest.raises(ValueError):
        apply_slippage(1_000, 1.5)


def test_price_per_bond_and_deviation():
    assert price_per_bond(95, 100) == pytest.approx(0.95)
    with pytest.raises(ValueError):
        price_per_bond(1, 0)

    assert price_deviation(0.99, 1.0) == pytest.approx(0.01)
    assert price_deviation(1.01, 1.0) == pytest.approx(0.01)


def test_check_price_deviation():
    check_price_deviation(0.9505, 0.95, 0.001, maturity_time=100)
    with pytest.raises(SlippageExceeded):
        check_price_deviation(0.96, 0.95, 0.001, maturity_time=100)


def test_closure_buffer_is_capped():
    assert apply_closure_buffer(1_000, 0.001, 10_000) == 1_001
    assert apply_closure_buffer(1_000, 0.5, 1_200) == 1_200


def test_rounding_is_exact_for_wad_amounts():
    amount = 10**21 - 1
    assert apply_slippage(amount, 0.0) == amount
    assert apply_slippage(amount, 0.01) == amount * 99 // 100
    assert apply_closure_buffer(amount, 0.0, 2 * amount) == amount, "a zero buffer never shrinks the closure"
    assert apply_closure_buffer(amount, 0.001, 2 * amount) == -(-amount * 1_001 // 1_000)


@pytest.fixture(scope="module")
def market():
    return SimulatedBondMarket(now=0, fixed_rate=0.05, price_impact=0.02, liquidity=1_000 * WAD)


@pytest.mark.parametrize("target", [3 * WAD, 17 * WAD + 12345, 49 * WAD])
def test_bonds_for_target_proceeds_is_minimal(market, target):
    maturity = 200 * SECONDS_PER_DAY
    position = 60 * WAD

    bonds = bonds_for_target_proceeds(market.preview_close_position, maturity, position, target)

    assert market.preview_close_position(maturity, bonds) >= target
    assert market.preview_close_position(maturity, bonds - 1) < target, "one bond fewer must fall short"


def test_bonds_for_target_proceeds_whole_position_when_short(market):
    maturity = 200 * SECONDS_PER_DAY
    assert bonds_for_target_proceeds(market.preview_close_position, maturity, 10 * WAD, 100 * WAD) == 10 * WAD


def test_bonds_for_target_proceeds_linear_market():
    flat = SimulatedBondMarket(now=0, fixed_rate=0.0)
    # zero rate: one bond -> one unit
    assert bonds_for_target_proceeds(flat.preview_close_position, 10 * SECONDS_PER_DAY, 100 * WAD, 40 * WAD) == 40 * WAD
    assert bonds_for_target_proceeds(flat.preview_close_position, 10 * SECONDS_PER_DAY, 100 * WAD, 0) == 0


def test_bonds_for_target_proceeds_matches_discount():
    market = SimulatedBondMarket(now=0, fixed_rate=0.05)
    maturity = 365 * SECONDS_PER_DAY
    bonds = bonds_for_target_proceeds(market.preview_close_position, maturity, 100 * WAD, 10 * WAD)
    assert bonds == pytest.approx(10 * WAD * math.exp(0.05), rel=1e-12)
