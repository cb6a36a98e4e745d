"""
Pure text helpers: timestamp formatting, whitespace and diacritic
normalization, filename sanitizing, parameter decoding and video id
extraction.
"""

import math
import re
import unicodedata
from typing import Optional
from urllib.parse import urlparse, parse_qs

YT_HOSTS = {
    "www.youtube.com",
    "youtube.com",
    "youtu.be",
    "m.youtube.com",
    "music.youtube.com",
}

_WHITESPACE_RE = re.compile(r"\s+")
_COMBINING_RE = re.compile("[\u0300-\u036f]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+", re.IGNORECASE)

DEFAULT_FILENAME = "youtube-transcript"


def format_timestamp(seconds: float) -> str:
    """Format seconds as H:MM:SS style text: 0 -> "0:00", 65 -> "1:05", 3661 -> "01:01:01"."""
    try:
        total = max(0, int(math.floor(float(seconds))))
    except (TypeError, ValueError, OverflowError):
        total = 0

    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_timestamp_ms(milliseconds) -> str:
    """Format a millisecond offset (int, float or numeric string)."""
    try:
        value = float(milliseconds or 0)
    except (TypeError, ValueError):
        value = 0.0
    if math.isnan(value) or math.isinf(value):
        value = 0.0
    return format_timestamp(value / 1000)


def collapse_whitespace(text: Optional[str]) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_diacritics(text: Optional[str]) -> str:
    return _COMBINING_RE.sub("", unicodedata.normalize("NFD", text or ""))


def normalize_label(text: Optional[str]) -> str:
    """Lower-cased, accent-free form used for label keyword matching."""
    return strip_diacritics(text).lower()


def sanitize_filename(text: Optional[str]) -> str:
    """Reduce text to a lower-case ASCII slug suitable for a filename."""
    slug = _NON_ALNUM_RE.sub("-", strip_diacritics(text)).strip("-").lower()
    return slug or DEFAULT_FILENAME


def decode_param(param):
    """Undo the JSON-escaped ampersands found in page-embedded parameters."""
    if not isinstance(param, str):
        return param
    return param.replace("\\u0026", "&")


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """
    Extract a video id from a watch, short, embed, live or youtu.be URL.

    Returns None for non-platform hosts and for URLs that do not point at a
    single video.
    """
    if not url:
        return None

    candidate = url.strip()
    if not re.match(r"^https?://", candidate, re.IGNORECASE):
        candidate = f"https://{candidate}"

    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None

    host = (parsed.hostname or "").lower()
    if host not in YT_HOSTS:
        return None

    path = parsed.path or ""

    if host == "youtu.be":
        return path.lstrip("/").split("/")[0] or None

    if path == "/watch":
        values = parse_qs(parsed.query).get("v")
        return values[0] if values and values[0] else None

    for prefix in ("/embed/", "/v/", "/shorts/", "/live/"):
        if path.startswith(prefix):
            parts = path.split("/")
            return parts[2] if len(parts) > 2 and parts[2] else None

    return None
