"""
Notifier adapters.

The SMS / push gateway is an external collaborator; this project
only decides who is told what. `LoggingNotifier` records the
notification and is the default until a gateway is wired.
"""

from typing import Any, Mapping
import logging

logger = logging.getLogger(__name__)

# Payload keys that must never be written to a log
SECRET_KEYS = frozenset({"code"})


class LoggingNotifier:
    """Notifier that logs each notification, with secrets masked."""

    def __init__(self, log_level: int = logging.INFO):
        self._log_level = log_level

    def notify(self, ticket_id: str, event_kind: str, payload: Mapping[str, Any]) -> None:
        safe = {
            key: ("***" if key in SECRET_KEYS else value)
            for key, value in payload.items()
        }
        logger.log(self._log_level, f"[NOTIFICATION] {event_kind} | ticket={ticket_id} | {safe}")
