"""
Event helper functions for structured JSON logging.

This module provides consistent event emission and strategy timing
utilities for the transcript engine's logging system.
"""

import logging
import time
from typing import Optional

# Events go through one named logger so callers can tune its level
logger = logging.getLogger('transcript.events')


def evt(event: str, **fields) -> None:
    """
    Emit a structured event with consistent field naming.

    Example:
        evt("transcript_cache_hit", video_id="abc123", lines=42)
    """
    event_data = {"event": event}
    event_data.update(fields)
    logger.info("", extra=event_data)


def diag_evt(event: str, **fields) -> None:
    """
    Emit an expected, recoverable failure (network, HTTP status, parse) at DEBUG.

    Keeps swallowed per-candidate failures out of the default log stream while
    staying distinguishable from unexpected errors reported by `error_evt`.
    """
    event_data = {"event": event}
    event_data.update(fields)
    logger.debug("", extra=event_data)


def error_evt(event: str, **fields) -> None:
    """Emit an unexpected failure at ERROR."""
    event_data = {"event": event}
    event_data.update(fields)
    logger.error("", extra=event_data)


class StrategyTimer:
    """
    Context manager for strategy timing with structured logging.

    Emits strategy_start on entry and strategy_result on exit. The outcome is
    "success" when `mark_success` was called, "no_result" otherwise, and
    "error" if an exception escaped the block.

    Example:
        with StrategyTimer("timedtext", video_id="abc123") as timer:
            lines = await strategy.fetch(video_id)
            if lines:
                timer.mark_success(lines=len(lines))
    """

    def __init__(self, strategy: str, **context_fields):
        self.strategy = strategy
        self.context_fields = context_fields
        self.start_time: Optional[float] = None
        self.succeeded = False
        self.result_fields = {}

    def mark_success(self, **result_fields):
        self.succeeded = True
        self.result_fields.update(result_fields)

    def __enter__(self):
        self.start_time = time.time()
        evt("strategy_start", strategy=self.strategy, **self.context_fields)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.start_time is None:
            duration_ms = 0
        else:
            duration_ms = int((time.time() - self.start_time) * 1000)

        event_fields = {
            "strategy": self.strategy,
            "dur_ms": duration_ms,
            **self.context_fields,
            **self.result_fields,
        }

        if exc_type is not None:
            event_fields["outcome"] = "error"
            event_fields["detail"] = f"{exc_type.__name__}: {exc_value}"
        else:
            event_fields["outcome"] = "success" if self.succeeded else "no_result"

        evt("strategy_result", **event_fields)
        return False

