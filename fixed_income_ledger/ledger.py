from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, Iterator, Optional, Tuple

from .errors import EmptyLedger, IndexOutOfRange
from .utils import U256_MAX, check_u128

MATURITY_SHIFT = 128
AMOUNT_MASK = (1 << MATURITY_SHIFT) - 1


@dataclass(frozen=True)
class Position:
    maturity_time: int  # unix seconds
    bond_amount: int


def encode(maturity_time: int, bond_amount: int) -> int:
    """
    Pack a position into one 256-bit word: maturity in the high 128 bits,
    bond amount in the low 128 bits.
    """
    check_u128(maturity_time, "maturity_time")
    check_u128(bond_amount, "bond_amount")
    return (maturity_time << MATURITY_SHIFT) | bond_amount


def decode(word: int) -> Position:
    if word < 0 or word > U256_MAX:
        raise ValueError(f"word outside u256 range: {word}")
    return Position(maturity_time=word >> MATURITY_SHIFT, bond_amount=word & AMOUNT_MASK)


class PositionLedger:
    """
    Double-ended queue of packed position words.

    Pure storage: ordering and merge rules live in ``portfolio``.
    """

    __slots__ = ("_words",)

    def __init__(self, words: Optional[Iterable[int]] = None) -> None:
        self._words: Deque[int] = deque(words or ())

    def __len__(self) -> int:
        return len(self._words)

    def __iter__(self) -> Iterator[Position]:
        return (decode(w) for w in self._words)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PositionLedger):
            return NotImplemented
        return self._words == other._words

    def __repr__(self) -> str:
        inner = ", ".join(f"({p.maturity_time}, {p.bond_amount})" for p in self)
        return f"PositionLedger([{inner}])"

    def length(self) -> int:
        return len(self._words)

    def at(self, index: int) -> Position:
        if index < 0 or index >= len(self._words):
            raise IndexOutOfRange(index, len(self._words))
        return decode(self._words[index])

    def front(self) -> Position:
        if not self._words:
            raise EmptyLedger("ledger is empty")
        return decode(self._words[0])

    def back(self) -> Position:
        if not self._words:
            raise EmptyLedger("ledger is empty")
        return decode(self._words[-1])

    def push_back(self, word: int) -> None:
        decode(word)
        self._words.append(word)

    def push_front(self, word: int) -> None:
        decode(word)
        self._words.appendleft(word)

    def pop_back(self) -> int:
        if not self._words:
            raise EmptyLedger("pop_back on empty ledger")
        return self._words.pop()

    def pop_front(self) -> int:
        if not self._words:
            raise EmptyLedger("pop_front on empty ledger")
        return self._words.popleft()

    def words(self) -> Tuple[int, ...]:
        return tuple(self._words)

    def copy(self) -> "PositionLedger":
        return PositionLedger(self._words)
