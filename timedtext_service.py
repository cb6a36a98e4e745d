"""
Timed-caption transcript strategy.

Features:
- Caption track selection from the page's player configuration.
- Ordered, deduplicated candidate URLs with optional json3 format hint and
  access token.
- Access-token capture when every token-less candidate fails.
- JSON (json3) and legacy XML caption bodies.
"""

from typing import Any, List, Optional
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

import httpx

from engine_config import EngineConfig
from http_client import send_with_retry, mask_url_for_logging
from logging_setup import get_logger
from log_events import evt, diag_evt, error_evt
from page_accessor import PageAccessor
from token_capture import TokenCapture, TOKEN_PARAM
from transcript_errors import is_expected_failure, classify_error_type
from transcript_models import CaptionTrack, TranscriptLine, VideoSession
from transcript_parsers import parse_timedtext_body, has_transcript_events, lines_from_events

logger = get_logger(__name__)

FORMAT_PARAM = "fmt"
FORMAT_HINT = "json3"


# --- URL helpers ---

def set_query_param(url: str, key: str, value: str, replace: bool = True) -> str:
    """Set key=value in url's query; with replace=False an existing key wins."""
    if not url or not value:
        return url
    parsed = urlparse(url)
    pairs = parse_qsl(parsed.query, keep_blank_values=True)
    if any(k == key for k, _ in pairs):
        if not replace:
            return url
        pairs = [(k, v) for k, v in pairs if k != key]
    pairs.append((key, value))
    return urlunparse(parsed._replace(query=urlencode(pairs)))


def with_format_hint(url: str) -> str:
    return set_query_param(url, FORMAT_PARAM, FORMAT_HINT, replace=False)


def with_token(url: str, token: Optional[str]) -> str:
    return set_query_param(url, TOKEN_PARAM, token) if token else url


def unique_urls(urls: List[Optional[str]]) -> List[str]:
    seen = set()
    result = []
    for url in urls:
        if not url or url in seen:
            continue
        seen.add(url)
        result.append(url)
    return result


def build_candidate_urls(base_url: str, token: Optional[str] = None) -> List[str]:
    """
    Ordered candidates: format hint + token, token, format hint, bare base URL.

    Token-bearing candidates are only present when a token is known.
    """
    fmt_url = with_format_hint(base_url)
    candidates = []
    if token:
        candidates.append(with_token(fmt_url, token))
        candidates.append(with_token(base_url, token))
    candidates.append(fmt_url)
    candidates.append(base_url)
    return unique_urls(candidates)


# --- Track selection ---

def caption_tracks(player_response: Any) -> List[CaptionTrack]:
    if not isinstance(player_response, dict):
        return []
    tracks = (((player_response.get("captions") or {})
               .get("playerCaptionsTracklistRenderer") or {})
              .get("captionTracks"))
    if not isinstance(tracks, list):
        return []
    return [t for t in (CaptionTrack.from_player_track(raw) for raw in tracks) if t is not None]


def pick_caption_track(tracks: List[CaptionTrack], preferred_language: Optional[str] = None) -> Optional[CaptionTrack]:
    """
    Exact case-insensitive language match, else the first manual track
    (no kind), else the first track.
    """
    if not tracks:
        return None

    if preferred_language:
        wanted = preferred_language.lower()
        for track in tracks:
            if track.language_code.lower() == wanted:
                return track

    for track in tracks:
        if not track.kind:
            return track

    return tracks[0]


class TimedtextTranscriptStrategy:
    """Fetch captions directly from the selected track's delivery URL."""

    name = "timedtext"

    def __init__(self, page: PageAccessor, client: httpx.AsyncClient,
                 token_capture: TokenCapture, config: EngineConfig):
        self.page = page
        self.client = client
        self.token_capture = token_capture
        self.config = config

    async def fetch(self, video_id: str, session: VideoSession) -> Optional[List[TranscriptLine]]:
        try:
            track = await self._select_track(video_id)
            if not track or not track.base_url:
                evt("timedtext_no_track", video_id=video_id)
                return None

            token = await self.token_capture.peek_token(session)
            lines = await self.fetch_from_urls(build_candidate_urls(track.base_url, token), video_id)
            if lines:
                return lines

            if token:
                return None

            token = await self.token_capture.ensure_token(session)
            if not token:
                evt("timedtext_no_token", video_id=video_id)
                return None

            retry_urls = build_candidate_urls(track.base_url, token)[:2]
            return await self.fetch_from_urls(retry_urls, video_id, with_captured_token=True)

        except Exception as e:
            fields = dict(video_id=video_id, error_type=classify_error_type(e), detail=str(e)[:160])
            if is_expected_failure(e):
                diag_evt("timedtext_fetch_failed", **fields)
            else:
                error_evt("timedtext_fetch_exception", **fields)
            return None

    async def _select_track(self, video_id: str) -> Optional[CaptionTrack]:
        tracks = caption_tracks(await self.page.player_response())
        preferred = self.config.preferred_language or await self.page.preferred_language()
        track = pick_caption_track(tracks, preferred)
        if track:
            evt("timedtext_track_selected",
                video_id=video_id,
                track_count=len(tracks),
                language=track.language_code,
                kind=track.kind or "manual")
        return track

    async def fetch_from_urls(self, urls: List[str], video_id: str,
                              with_captured_token: bool = False) -> Optional[List[TranscriptLine]]:
        """Try each candidate in order; the first yielding lines wins."""
        for attempt, url in enumerate(unique_urls(urls), start=1):
            masked = mask_url_for_logging(url)
            try:
                response = await send_with_retry(
                    self.client, "GET", url,
                    attempts=self.config.http_retry_attempts,
                    headers={"Referer": f"{self.config.origin}/watch?v={video_id}"},
                )
                data = parse_timedtext_body(response.text)
                lines = lines_from_events(data["events"]) if has_transcript_events(data) else None
            except Exception as e:
                fields = dict(video_id=video_id, attempt=attempt, candidate=masked,
                              error_type=classify_error_type(e), detail=str(e)[:100])
                if is_expected_failure(e):
                    diag_evt("timedtext_candidate_failed", **fields)
                else:
                    error_evt("timedtext_candidate_exception", **fields)
                continue

            if not lines:
                diag_evt("timedtext_candidate_empty", video_id=video_id, attempt=attempt, candidate=masked)
                continue

            evt("timedtext_fetch_success",
                video_id=video_id,
                attempt=attempt,
                candidate=masked,
                lines=len(lines),
                captured_token=with_captured_token)
            return lines

        return None
