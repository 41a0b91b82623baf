"""Duplicate suppression for the intake workflow trigger.

Three signals decide whether a start trigger may run the intake workflow for
a channel:

- a durable marker posted (and pinned) by a previous run, found by scanning
  the channel's recent history and pins. It survives restarts and is
  authoritative;
- a cooldown timestamp recorded when a run starts;
- a short-lived "recently started" entry absorbing duplicate event
  deliveries.

The in-memory state is process-local and best-effort. A failed marker scan
counts as "not found": running twice is preferable to silently skipping a job.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Mapping, Protocol

import structlog

from .slack_client import SLACK_CALL_ERRORS, SlackClient, slack_error_code

ALREADY_COMPLETED = "already_completed"
COOLING_DOWN = "cooling_down"
RECENTLY_STARTED = "recently_started"


class IdempotencyStore(Protocol):
    def mark_recent(self, channel_id: str) -> None: ...

    def is_recent(self, channel_id: str) -> bool: ...

    def mark_cooldown(self, channel_id: str) -> None: ...

    def is_cooling_down(self, channel_id: str) -> bool: ...


class CompletionChecker(Protocol):
    def has_completed(self, channel_id: str) -> bool: ...


class InMemoryIdempotencyStore:
    """Keep per-channel timestamps for the cooldown and recent-start windows."""

    def __init__(
        self,
        *,
        cooldown: timedelta = timedelta(seconds=60),
        recent_window: timedelta = timedelta(seconds=10),
        timer: Callable[[], float] | None = None,
    ) -> None:
        if cooldown.total_seconds() <= 0 or recent_window.total_seconds() <= 0:
            raise ValueError("Guard windows must be greater than zero seconds.")

        self._cooldown = cooldown.total_seconds()
        self._recent_window = recent_window.total_seconds()
        self._timer = timer or time.monotonic
        self._lock = threading.Lock()
        self._recent: Dict[str, float] = {}
        self._cooldowns: Dict[str, float] = {}

    def mark_recent(self, channel_id: str) -> None:
        with self._lock:
            self._recent[channel_id] = self._timer()

    def is_recent(self, channel_id: str) -> bool:
        with self._lock:
            return self._within(self._recent, channel_id, self._recent_window)

    def mark_cooldown(self, channel_id: str) -> None:
        with self._lock:
            self._cooldowns[channel_id] = self._timer()

    def is_cooling_down(self, channel_id: str) -> bool:
        with self._lock:
            return self._within(self._cooldowns, channel_id, self._cooldown)

    def clear(self, channel_id: str | None = None) -> None:
        """Forget guard state for one channel, or for every channel."""

        with self._lock:
            if channel_id is None:
                self._recent.clear()
                self._cooldowns.clear()
            else:
                self._recent.pop(channel_id, None)
                self._cooldowns.pop(channel_id, None)

    def _within(self, entries: Dict[str, float], channel_id: str, window: float) -> bool:
        # Expired entries are dropped on read.
        started = entries.get(channel_id)
        if started is None:
            return False
        if self._timer() - started < window:
            return True
        entries.pop(channel_id, None)
        return False


def _message_has_marker(message: Mapping[str, object], marker: str) -> bool:
    text = message.get("text")
    return isinstance(text, str) and marker in text


class MarkerCompletionChecker:
    """Detect a completed intake by scanning history and pins for the marker."""

    def __init__(self, slack_client: SlackClient, *, marker: str, history_limit: int = 50) -> None:
        if not marker:
            raise ValueError("A non-empty marker is required.")
        self._slack = slack_client
        self._marker = marker
        self._history_limit = history_limit

    def has_completed(self, channel_id: str) -> bool:
        log = structlog.get_logger().bind(channel=channel_id)

        try:
            history = self._slack.recent_messages(channel_id, limit=self._history_limit)
        except SLACK_CALL_ERRORS as exc:
            log.warning("marker_history_scan_failed", error=slack_error_code(exc))
            history = []
        if any(_message_has_marker(message, self._marker) for message in history):
            return True

        try:
            pins = self._slack.pinned_messages(channel_id)
        except SLACK_CALL_ERRORS as exc:
            log.warning("marker_pin_scan_failed", error=slack_error_code(exc))
            return False
        return any(_message_has_marker(message, self._marker) for message in pins)


class NeverCompleted:
    """Completion checker used when the durable marker step is disabled."""

    def has_completed(self, channel_id: str) -> bool:
        return False


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    reason: str | None = None


class IntakeGuard:
    """Combine the durable check with the in-memory guards."""

    def __init__(self, *, store: IdempotencyStore, completion: CompletionChecker) -> None:
        self._store = store
        self._completion = completion
        self._lock = threading.Lock()

    def should_start(self, channel_id: str) -> GuardDecision:
        """Return whether the intake may run, marking the channel when it may."""

        if self._completion.has_completed(channel_id):
            return GuardDecision(False, ALREADY_COMPLETED)

        with self._lock:
            if self._store.is_cooling_down(channel_id):
                return GuardDecision(False, COOLING_DOWN)
            if self._store.is_recent(channel_id):
                return GuardDecision(False, RECENTLY_STARTED)

            self._store.mark_recent(channel_id)
            self._store.mark_cooldown(channel_id)

        return GuardDecision(True)
