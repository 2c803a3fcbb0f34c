"""
Logging setup for the nudge engine.

Modules log through ``logging.getLogger(__name__)``. Structured fields go in
``extra={"context": {...}}`` and are appended to the console line.
"""

import logging
from datetime import datetime
from typing import Optional, Union


class ContextFormatter(logging.Formatter):
    """Compact console format: ``HH:MM:SS LEVL logger: message [k=v, ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        message = record.getMessage()

        context = getattr(record, "context", None)
        if context:
            parts = ", ".join(f"{k}={v}" for k, v in context.items())
            message = f"{message} [{parts}]"

        line = f"{timestamp} {record.levelname[:4]:4s} {record.name}: {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


_handler: Optional[logging.Handler] = None


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Attach a console handler to the ``nudge_engine`` logger. Safe to call repeatedly."""
    global _handler

    root = logging.getLogger("nudge_engine")
    root.setLevel(level)

    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(ContextFormatter())
        root.addHandler(_handler)

    return root
