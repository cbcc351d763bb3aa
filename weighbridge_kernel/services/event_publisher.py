"""
EventPublisher -- in-process delivery of domain events to subscribers.

Events raised inside a transaction are delivered only after it commits.
A failing subscriber is logged and does not stop delivery to the others;
the committed mutation is never affected.
"""

from collections import defaultdict
from typing import Any, Callable

from sqlalchemy.orm import Session

from weighbridge_kernel.logging_config import get_logger
from weighbridge_kernel.services.hooks import on_commit

logger = get_logger("services.events")

Handler = Callable[[Any], None]


class EventPublisher:
    def __init__(self) -> None:
        self._subscribers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._subscribers[event_type].append(handler)

    def publish(self, event: Any) -> None:
        """Deliver ``event`` to its subscribers now."""
        for handler in list(self._subscribers.get(type(event), ())):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "event_subscriber_failed",
                    extra={"event_type": type(event).__name__},
                )

    def publish_after_commit(self, session: Session, event: Any) -> None:
        """Deliver ``event`` once ``session`` commits; drop it on rollback."""
        on_commit(session, lambda: self.publish(event))
