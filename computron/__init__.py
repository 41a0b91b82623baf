"""Computron job intake bot package initialisation."""

from .background import run_async  # noqa: F401
from .config import AppSettings, get_settings  # noqa: F401
from .idempotency import InMemoryIdempotencyStore, IntakeGuard, MarkerCompletionChecker  # noqa: F401
from .intake import IntakeOptions, IntakeOrchestrator  # noqa: F401
from .logging_config import configure_logging  # noqa: F401

__all__ = [
    "AppSettings",
    "get_settings",
    "run_async",
    "InMemoryIdempotencyStore",
    "IntakeGuard",
    "MarkerCompletionChecker",
    "IntakeOptions",
    "IntakeOrchestrator",
    "configure_logging",
]
