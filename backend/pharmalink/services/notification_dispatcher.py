from typing import Any, Dict

from ..core.logging_config import get_logger
from ..domain.interfaces import INotificationDispatcher

logger = get_logger(__name__)


class LoggingNotificationDispatcher(INotificationDispatcher):
    """Default dispatcher: records the event as a structured log line.

    Push delivery belongs to an external service that tails these events.
    """

    def dispatch(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info(
            f"Notification: {event}",
            extra={"context": {"event": event, **payload}},
        )
