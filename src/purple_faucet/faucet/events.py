"""Domain events emitted by the faucet engine."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FaucetFunded:
    """Currency entered the pool."""

    sender: str
    amount: int


@dataclass(frozen=True)
class FaucetPayout:
    """A payout left the pool for a recipient."""

    recipient: str
    amount: int


FaucetEvent = FaucetFunded | FaucetPayout


class EventLog:
    """Ordered record of emitted events with synchronous subscribers.

    Subscribers run after the emitting operation has committed, so a failing
    subscriber is logged and never undoes the operation.
    """

    def __init__(self):
        self._events: list[FaucetEvent] = []
        self._subscribers: list[Callable[[FaucetEvent], None]] = []

    def subscribe(self, callback: Callable[[FaucetEvent], None]) -> None:
        """Register a callback invoked for every future event."""
        self._subscribers.append(callback)

    def emit(self, event: FaucetEvent) -> None:
        """Record an event and notify subscribers."""
        self._events.append(event)
        for callback in self._subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Event subscriber failed",
                    extra={"event_type": type(event).__name__},
                )

    @property
    def events(self) -> list[FaucetEvent]:
        """Events emitted so far, oldest first."""
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)
