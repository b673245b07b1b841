import pytest
from hypothesis import given
from hypothesis import strategies as st

from fixed_income_ledger.errors import EmptyLedger, IndexOutOfRange
from fixed_income_ledger.ledger import Position, PositionLedger, decode, encode
from fixed_income_ledger.utils import U128_MAX

u128 = st.integers(min_value=0, max_value=U128_MAX)


@given(m=u128, b=u128)
def test_encode_decode_round_trip(m, b):
    assert decode(encode(m, b)) == Position(m, b)


def test_packed_layout_high_maturity_low_amount():
    word = encode(1, 2)
    assert word == (1 << 128) | 2
    assert encode(U128_MAX, U128_MAX) == (1 << 256) - 1
    assert encode(0, 0) == 0


@pytest.mark.parametrize("m, b", [(-1, 0), (0, -1), (U128_MAX + 1, 0), (0, U128_MAX + 1)])
def test_encode_rejects_values_outside_u128(m, b):
    with pytest.raises(ValueError):
        encode(m, b)


def test_decode_rejects_values_outside_u256():
    with pytest.raises(ValueError):
        decode(1 << 256)
    with pytest.raises(ValueError):
        decode(-1)


def test_deque_operations_at_both_ends():
    ledger = PositionLedger()
    ledger.push_back(encode(200, 2))
    ledger.push_back(encode(300, 3))
    ledger.push_front(encode(100, 1))

    assert ledger.length() == 3
    assert [p.maturity_time for p in ledger] == [100, 200, 300]
    assert ledger.at(1) == Position(200, 2)
    assert ledger.front() == Position(100, 1)
    assert ledger.back() == Position(300, 3)

    assert decode(ledger.pop_front()) == Position(100, 1)
    assert decode(ledger.pop_back()) == Position(300, 3)
    assert list(ledger) == [Position(200, 2)]


def test_at_out_of_range():
    ledger = PositionLedger([encode(100, 1)])
    with pytest.raises(IndexOutOfRange):
        ledger.at(1)
    with pytest.raises(IndexOutOfRange):
        ledger.at(-1)
    with pytest.raises(IndexOutOfRange):
        PositionLedger().at(0)


def test_empty_ledger_pops_and_peeks_raise():
    ledger = PositionLedger()
    for op in (ledger.pop_front, ledger.pop_back, ledger.front, ledger.back):
        with pytest.raises(EmptyLedger):
            op()


def test_copy_is_independent():
    ledger = PositionLedger([encode(100, 1)])
    clone = ledger.copy()
    clone.push_back(encode(200, 2))

    assert len(ledger) == 1
    assert len(clone) == 2
    assert ledger != clone
    assert ledger.words() == (encode(100, 1),)
