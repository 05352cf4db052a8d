from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, DefaultDict, List, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportCompleted:
    batch_id: str


@dataclass(frozen=True)
class BatchDeleted:
    batch_id: str


@dataclass(frozen=True)
class OutlierClassificationChanged:
    batch_id: str
    invoice_ids: Tuple[str, ...] = field(default_factory=tuple)


Handler = Callable[[object], None]


class EventBus:
    """In-process notifications for views that cache batch data.

    Delivery is synchronous, at most once, and never fails the publisher.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[object], handler: Handler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: object) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", type(event).__name__)
