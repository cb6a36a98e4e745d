"""
Core logging infrastructure for the transcript engine.

Provides single-line JSON logging with per-task context correlation,
rate limiting, and third-party library noise suppression.
"""

import json
import logging
import threading
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional, Set
from collections import defaultdict


# Context for video correlation; contextvars follow asyncio tasks
_video_ctx: ContextVar[Optional[Dict[str, str]]] = ContextVar("video_ctx", default=None)

_ORDERED_FIELDS = ['event', 'outcome', 'dur_ms', 'detail']
_CONTEXT_FIELDS = ['attempt', 'candidate', 'status_code', 'error_type']

_STANDARD_FIELDS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
    'ts', 'lvl', 'video_id', 'strategy',
}


def set_video_ctx(video_id: str = None, strategy: str = None):
    """
    Set context for log correlation in the current task.

    Args:
        video_id: Video identifier being resolved
        strategy: Strategy currently running (youtubei, timedtext, dom_panel)
    """
    context = dict(_video_ctx.get() or {})
    if video_id is not None:
        context['video_id'] = video_id
    if strategy is not None:
        context['strategy'] = strategy
    _video_ctx.set(context)


def clear_video_ctx():
    """Clear the correlation context."""
    _video_ctx.set({})


def get_video_ctx() -> Dict[str, str]:
    """Get the current correlation context."""
    return dict(_video_ctx.get() or {})


class JsonFormatter(logging.Formatter):
    """
    JSON formatter with standardized field order and context injection.

    Produces single-line JSON with stable schema:
    ts, lvl, video_id, strategy, event, outcome, dur_ms, detail
    """

    def format(self, record: logging.LogRecord) -> str:
        try:
            dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
            timestamp = dt.strftime('%Y-%m-%dT%H:%M:%S') + f'.{int(dt.microsecond / 1000):03d}Z'

            log_data = {
                'ts': timestamp,
                'lvl': record.levelname
            }

            context = get_video_ctx()
            for field in ('video_id', 'strategy'):
                value = getattr(record, field, None) or context.get(field)
                if value is not None:
                    log_data[field] = value

            for field in _ORDERED_FIELDS + _CONTEXT_FIELDS:
                if getattr(record, field, None) is not None:
                    log_data[field] = getattr(record, field)

            # Remaining extras passed via logger.info(extra=...)
            for attr_name, attr_value in record.__dict__.items():
                if (attr_name.startswith('_') or attr_name in _STANDARD_FIELDS
                        or attr_name in log_data or attr_value is None):
                    continue
                log_data[attr_name] = attr_value

            if 'detail' not in log_data and record.getMessage():
                log_data['detail'] = record.getMessage()

            if record.exc_info and record.exc_info[0] is not None:
                log_data['exc_type'] = record.exc_info[0].__name__

            return json.dumps(log_data, separators=(',', ':'), ensure_ascii=False, default=str)

        except Exception:
            return json.dumps({
                'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'lvl': record.levelname,
                'detail': str(record.msg),
            })


class RateLimitFilter(logging.Filter):
    """
    Rate limiting filter to prevent log spam.

    Limits messages to `per_key` per key per sliding window and emits a
    suppression marker the first time the limit is exceeded.
    """

    def __init__(self, per_key: int = 5, window_sec: int = 60):
        super().__init__()
        self.per_key = per_key
        self.window_sec = window_sec
        self.counts: Dict[str, list] = defaultdict(list)
        self.suppressed: Set[str] = set()
        self._lock = threading.Lock()

    def _get_message_key(self, record: logging.LogRecord) -> str:
        event = getattr(record, 'event', None)
        message = event or record.getMessage()[:100]
        return f"{record.levelname}:{message}"

    def _cleanup_old_entries(self, key: str, now: float):
        cutoff = now - self.window_sec
        self.counts[key] = [ts for ts in self.counts[key] if ts > cutoff]

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            key = self._get_message_key(record)
            now = time.time()

            with self._lock:
                self._cleanup_old_entries(key, now)

                if len(self.counts[key]) < self.per_key:
                    self.counts[key].append(now)
                    self.suppressed.discard(key)
                    return True

                if key not in self.suppressed:
                    self.suppressed.add(key)
                    record.msg = f"{record.getMessage()} [suppressed]"
                    record.args = ()
                    return True

                return False

        except Exception:
            return True


def configure_logging(log_level: str = "INFO", use_json: bool = True) -> logging.Logger:
    """
    Configure application logging with JSON formatting and noise suppression.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_json: Whether to use JSON formatting (True) or basic formatting (False)

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    if use_json:
        handler.setFormatter(JsonFormatter())
        handler.addFilter(RateLimitFilter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root_logger.addHandler(handler)

    _suppress_library_noise()
    return root_logger


def _suppress_library_noise():
    """Suppress verbose logging from third-party libraries."""
    library_levels = {
        'playwright': logging.WARNING,
        'asyncio': logging.WARNING,
        'httpx': logging.WARNING,
        'httpcore': logging.WARNING,
    }

    for library, level in library_levels.items():
        logging.getLogger(library).setLevel(level)


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
