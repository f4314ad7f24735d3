"""
Logging utilities.

Provides root logging setup and a structured logger for operational events
(completed, failed and partially persisted turns).
"""

import logging
import sys
from datetime import datetime
import json

from atom_assistant.config import LOG_LEVEL

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Set up the root console handler once."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if not root.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console_handler)


class StructuredLogger:
    """Structured logger emitting one JSON document per event."""

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name, reported as the event's service
        """
        self.logger = logging.getLogger(name)

    def _log_structured(self, level: int, message: str, **kwargs):
        """
        Log a structured message.

        Args:
            level: Logging level
            message: Event name or message
            **kwargs: Additional structured data
        """
        if self.logger.isEnabledFor(level):
            log_data = {
                "timestamp": datetime.utcnow().isoformat(),
                "level": logging.getLevelName(level),
                "message": message,
                "service": self.logger.name
            }
            log_data.update(kwargs)

            self.logger.log(level, json.dumps(log_data, default=str))

    def debug(self, message: str, **kwargs):
        self._log_structured(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log_structured(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log_structured(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log_structured(logging.ERROR, message, **kwargs)


# Operational events for conversational turns
turn_logger = StructuredLogger("atom.turns")

