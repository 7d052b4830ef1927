"""
Process-wide logging setup.
"""

from __future__ import annotations

import logging

QUERY_LOG_LOGGER_NAME = "report_assistant.query_log"


def _build_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """
    Configure the root logger with a single console handler.
    Safe to call multiple times; the handler is only added once.
    """
    root = logging.getLogger("")
    root.setLevel(level)

    for handler in root.handlers:
        if getattr(handler, "_report_assistant", False):
            return root

    console = logging.StreamHandler()
    console.setFormatter(_build_formatter())
    console._report_assistant = True  # type: ignore[attr-defined]
    root.addHandler(console)
    return root
