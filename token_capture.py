"""
Access-token capture for the timed-caption endpoint.

The caption endpoint is sometimes gated behind a short-lived `pot` query
value that only the player knows. Toggling the player's subtitle control
off and on makes the player request a caption track again; the token is
then read back from the page's network-timing log.

Capture is single-flight per video: concurrent callers share one in-flight
task stored on the VideoSession, so the toggle is never clicked twice by
racing callers.
"""

import asyncio
import time
from typing import Iterable, Optional
from urllib.parse import urlparse, parse_qs

from engine_config import EngineConfig
from log_events import evt, diag_evt, error_evt
from page_accessor import PageAccessor, poll_until
from transcript_models import VideoSession

TIMEDTEXT_MARKER = "/api/timedtext?"
TOKEN_PARAM = "pot"
SUBTITLE_TOGGLE_SELECTOR = "button.ytp-subtitles-button"


def read_token_from_entries(entry_names: Iterable[str]) -> Optional[str]:
    """Return the token from the most recent timed-caption request in the log, if any."""
    names = [name for name in (entry_names or []) if isinstance(name, str)]
    for name in reversed(names):
        if TIMEDTEXT_MARKER not in name:
            continue
        try:
            values = parse_qs(urlparse(name).query).get(TOKEN_PARAM)
        except ValueError:
            continue
        if values and values[0]:
            return values[0]
    return None


class TokenCapture:
    """Recovers and memoizes the caption access token for the current video."""

    def __init__(self, page: PageAccessor, config: EngineConfig):
        self.page = page
        self.config = config

    async def read_existing_token(self) -> Optional[str]:
        """Read a token already present in the network-timing log, without toggling anything."""
        try:
            return read_token_from_entries(await self.page.resource_entry_names())
        except Exception as e:
            diag_evt("token_log_read_failed", error_type=type(e).__name__, detail=str(e)[:100])
            return None

    async def peek_token(self, session: VideoSession) -> Optional[str]:
        """Session token, else one already visible in the log (stored on the session)."""
        if session.access_token:
            return session.access_token
        token = await self.read_existing_token()
        if token:
            session.access_token = token
        return token

    async def ensure_token(self, session: VideoSession) -> Optional[str]:
        """
        Return the session token, capturing one if needed.

        Never raises: capture failures resolve to None.
        """
        if session.access_token:
            return session.access_token

        in_flight = session.token_capture_in_flight
        if in_flight is None:
            in_flight = asyncio.ensure_future(self._resolve_token(session.video_id))
            session.token_capture_in_flight = in_flight

            def _clear(task, session=session):
                if session.token_capture_in_flight is task:
                    session.token_capture_in_flight = None

            in_flight.add_done_callback(_clear)
        else:
            diag_evt("token_capture_joined", video_id=session.video_id)

        token = await asyncio.shield(in_flight)
        if token:
            session.access_token = token
        return token

    async def _resolve_token(self, video_id: str) -> Optional[str]:
        existing = await self.read_existing_token()
        if existing:
            evt("token_capture_result", video_id=video_id, outcome="preexisting")
            return existing

        start = time.time()
        evt("token_capture_start", video_id=video_id)
        try:
            token = await self._toggle_and_observe()
        except Exception as e:
            error_evt("token_capture_error", video_id=video_id,
                      error_type=type(e).__name__, detail=str(e)[:100])
            token = None

        evt("token_capture_result",
            video_id=video_id,
            outcome="success" if token else "no_token",
            dur_ms=int((time.time() - start) * 1000))
        return token

    async def _toggle_and_observe(self) -> Optional[str]:
        toggle = await self.page.query_selector(SUBTITLE_TOGGLE_SELECTOR)
        if toggle is None:
            diag_evt("token_capture_no_toggle")
            return None

        initial_pressed = await toggle.get_attribute("aria-pressed")

        try:
            await self.page.clear_resource_timings()
        except Exception as e:
            diag_evt("token_clear_timings_failed", detail=str(e)[:100])

        try:
            await toggle.click()
            await asyncio.sleep(self.config.toggle_click_delay_ms / 1000)
            await toggle.click()

            token = await poll_until(
                self.read_existing_token,
                self.config.token_capture_timeout_ms,
                self.config.token_poll_interval_ms,
            )
        finally:
            current_pressed = await toggle.get_attribute("aria-pressed")
            if (initial_pressed == "true") != (current_pressed == "true"):
                await toggle.click()
                diag_evt("token_toggle_restored", initial=initial_pressed, current=current_pressed)

        return token or await self.read_existing_token()
