# --- Lightweight signal/slot registry ---
import itertools
import logging
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger(__name__)

_subscription_ids: Iterator[int] = itertools.count(1)


class Subscription:
    """Handle returned by Signal.connect(); pass it back to disconnect()."""

    __slots__ = ("signal_name", "id")

    def __init__(self, signal_name: str, sub_id: int):
        self.signal_name = signal_name
        self.id = sub_id

    def __repr__(self) -> str:
        return f"Subscription({self.signal_name!r}, {self.id})"


class Signal:
    """
    Synchronous publish/subscribe channel.

    Subscribers run in connection order on the emitting thread. A subscriber
    that raises is logged and skipped; the remaining subscribers still run.
    Emitters commit their own state before calling emit().
    """

    def __init__(self, name: str):
        self.name = name
        self._slots: Dict[int, Callable[..., Any]] = {}

    def connect(self, slot: Callable[..., Any]) -> Subscription:
        sub = Subscription(self.name, next(_subscription_ids))
        self._slots[sub.id] = slot
        logger.debug(f"Connected {slot!r} to '{self.name}', total slots: {len(self._slots)}")
        return sub

    def disconnect(self, subscription: Subscription) -> bool:
        removed = self._slots.pop(subscription.id, None) is not None
        if removed:
            logger.debug(f"Disconnected {subscription!r}, remaining slots: {len(self._slots)}")
        return removed

    def emit(self, *args: Any) -> None:
        # Snapshot so slots may connect/disconnect while being notified
        slots: List[Callable[..., Any]] = list(self._slots.values())
        for slot in slots:
            try:
                slot(*args)
            except Exception as e:
                logger.error(f"Error in '{self.name}' slot {slot!r}: {e}", exc_info=True)

    def __len__(self) -> int:
        return len(self._slots)
