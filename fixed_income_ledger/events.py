from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Callable, Iterator, List, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionOpened:
    maturity_time: int
    bond_amount: int
    index: int


@dataclass(frozen=True)
class PositionUpdated:
    maturity_time: int
    new_bond_amount: int
    index: int


@dataclass(frozen=True)
class PositionClosed:
    maturity_time: int


@dataclass(frozen=True)
class Rebalanced:
    pass


Event = Union[PositionOpened, PositionUpdated, PositionClosed, Rebalanced]
Listener = Callable[[Event], None]


def event_to_dict(event: Event) -> dict:
    return {"event": type(event).__name__, **asdict(event)}


class EventLog:
    """
    Append-only record of emitted events.

    ``mark``/``truncate`` let a transaction discard what it emitted when it
    aborts. Listeners only see events once ``publish`` is called for them.
    """

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._listeners: List[Listener] = []
        self._published = 0

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def emit(self, event: Event) -> None:
        logger.debug("event %s", event_to_dict(event))
        self._events.append(event)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def mark(self) -> int:
        return len(self._events)

    def truncate(self, mark: int) -> None:
        del self._events[mark:]
        self._published = min(self._published, mark)

    def since(self, mark: int) -> List[Event]:
        return self._events[mark:]

    def publish(self) -> None:
        pending = self._events[self._published:]
        self._published = len(self._events)
        for event in pending:
            for listener in self._listeners:
                listener(event)
