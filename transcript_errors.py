"""
Exception taxonomy for transcript acquisition.

Per-candidate failures inside a strategy are raised as `EndpointHttpError` or
`ParseError`, caught at the strategy boundary and logged; only the
orchestrator raises `TranscriptUnavailable` to callers.
"""

from typing import Optional

import httpx


class TranscriptError(Exception):
    """Base class for user-facing transcript failures."""

    user_message = "Unable to get transcript."

    def __str__(self) -> str:
        return super().__str__() or self.user_message


class NoVideoDetected(TranscriptError):
    """Raised when no video identifier is available for the current page."""

    user_message = "No video detected."


class TranscriptUnavailable(TranscriptError):
    """Raised when every strategy is exhausted without producing lines."""

    user_message = "Transcript unavailable."

    def __init__(self, video_id: Optional[str] = None):
        super().__init__(self.user_message)
        self.video_id = video_id


class EndpointHttpError(TranscriptError):
    """Non-2xx response from a platform endpoint."""

    def __init__(self, status: int, url: str = ""):
        super().__init__(f"HTTP {status}")
        self.status = status
        self.url = url


class ParseError(TranscriptError):
    """Malformed JSON, XML or object graph shape."""

    def __init__(self, reason: str):
        super().__init__(f"Parse error: {reason}")
        self.reason = reason


class ClipboardUnavailable(TranscriptError):
    """Raised when the clipboard sink rejects the transcript."""

    user_message = "Clipboard API unavailable."


def is_expected_failure(exception: Exception) -> bool:
    """True for network, HTTP status and parse failures that strategies swallow quietly."""
    return isinstance(exception, (EndpointHttpError, ParseError, httpx.HTTPError, ValueError))


def classify_error_type(exception: Exception) -> str:
    """
    Classify an exception into a stable error type for structured logging.

    Args:
        exception: The exception to classify

    Returns:
        Error type string for consistent categorization
    """
    if isinstance(exception, EndpointHttpError):
        return "http_error"
    if isinstance(exception, ParseError):
        return "parse_error"
    if isinstance(exception, httpx.TimeoutException):
        return "timeout_error"
    if isinstance(exception, httpx.TransportError):
        return "network_error"
    if isinstance(exception, ValueError):
        return "parse_error"
    if isinstance(exception, TranscriptError):
        return "transcript_error"

    exception_str = str(exception).lower()
    if any(term in exception_str for term in ("timeout", "timed out")):
        return "timeout_error"
    if any(term in exception_str for term in ("target closed", "page closed", "context closed")):
        return "page_error"

    return "unexpected_error"
