"""Centralized logging helpers for the drawdesk backend."""
from __future__ import annotations

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

_NOISY_LOGGERS = ("apscheduler", "sqlalchemy.engine", "httpx", "openai")


class DrawdeskJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping every record with the service name."""

    def __init__(self, *args, service: str = "drawdesk", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._service = service

    def add_fields(self, log_record, record, message_dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["service"] = self._service
        log_record["level"] = record.levelname
        log_record.pop("levelname", None)


def setup_logging(level: str = "INFO", *, service: str = "drawdesk") -> None:
    """Configure root logging with a JSON formatter."""

    root_logger = logging.getLogger()
    # Remove existing handlers to avoid duplicate logs when reloading.
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(level.upper())

    handler = logging.StreamHandler()
    formatter = DrawdeskJsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s", service=service
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a logger configured with the shared root settings."""

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())
    return logger


__all__ = ["DrawdeskJsonFormatter", "setup_logging", "get_logger"]
