"""
Transcript acquisition engine.

Resolves the transcript for the video on the current page by trying, in
order, the structured endpoint, the timed-caption endpoint and the rendered
transcript panel. Strategies run strictly one after another; the first
non-empty, deduplicated result is cached per video and returned.
"""

from typing import List, Optional

import httpx

from engine_config import EngineConfig, get_engine_config
from logging_setup import get_logger, set_video_ctx, clear_video_ctx
from log_events import evt, error_evt, StrategyTimer
from page_accessor import PageAccessor, read_video_metadata
from text_utils import extract_video_id, sanitize_filename
from timedtext_service import TimedtextTranscriptStrategy
from token_capture import TokenCapture
from transcript_cache import TranscriptCache, ParamCache, LanguageParamCache
from transcript_errors import NoVideoDetected, TranscriptUnavailable, classify_error_type
from transcript_models import TranscriptLine, VideoMetadata, VideoSession
from transcript_panel_service import TranscriptPanelStrategy
from transcript_parsers import dedupe_lines
from youtubei_service import YoutubeiTranscriptStrategy

logger = get_logger(__name__)

HEADER_RULE = "-" * 40


def render_transcript_document(metadata: VideoMetadata, lines: List[TranscriptLine]) -> str:
    """Header block and a rule, then one "<timestamp> <text>" line per entry."""
    header = [
        f'video-title="{metadata.title}"',
        f'video-author="{metadata.channel}"',
    ]
    if metadata.published:
        header.append(f'video-published="{metadata.published}"')
    header.extend([f'video-link="{metadata.url}"', HEADER_RULE, ""])
    return "\n".join(header) + "\n".join(line.render() for line in lines)


def transcript_filename(metadata: VideoMetadata) -> str:
    return f"{sanitize_filename(metadata.title)}-{sanitize_filename(metadata.channel)}.txt"


class TranscriptEngine:
    """
    Owns the per-video caches and the current VideoSession.

    Caches outlive video changes; only the session is replaced when the
    active video changes, so a call still running for a previous video only
    ever touches its own session.
    """

    def __init__(self, page: PageAccessor, client: httpx.AsyncClient,
                 config: Optional[EngineConfig] = None,
                 transcript_cache: Optional[TranscriptCache] = None,
                 param_cache: Optional[ParamCache] = None,
                 language_cache: Optional[LanguageParamCache] = None):
        self.page = page
        self.client = client
        self.config = config or get_engine_config()

        self.transcript_cache = transcript_cache or TranscriptCache(self.config.transcript_cache_size)
        self.param_cache = param_cache or ParamCache(self.config.param_cache_size)
        self.language_cache = language_cache or LanguageParamCache(self.config.language_cache_size)
        self.session: Optional[VideoSession] = None

        self.token_capture = TokenCapture(page, self.config)
        self.youtubei = YoutubeiTranscriptStrategy(page, client, self.param_cache, self.language_cache, self.config)
        self.timedtext = TimedtextTranscriptStrategy(page, client, self.token_capture, self.config)
        self.dom_panel = TranscriptPanelStrategy(page, self.config)

    # --- Session handling ---

    def handle_navigation(self, url: Optional[str] = None) -> Optional[str]:
        """
        Sync the session with the page URL.

        A new video id replaces the session (token and in-flight capture are
        dropped, cached lines primed from TranscriptCache); a URL without a
        video id clears it.
        """
        video_id = extract_video_id(url if url is not None else self.page.current_url())
        if not video_id:
            if self.session is not None:
                evt("video_session_cleared", video_id=self.session.video_id)
            self.session = None
            return None

        if self.session is None or self.session.video_id != video_id:
            self.session = self._new_session(video_id)
            evt("video_session_started", video_id=video_id, primed=bool(self.session.cached_lines))
        return video_id

    def _new_session(self, video_id: str) -> VideoSession:
        return VideoSession(video_id=video_id, cached_lines=self.transcript_cache.get(video_id))

    def _session_for(self, video_id: str) -> VideoSession:
        if self.session is None or self.session.video_id != video_id:
            self.session = self._new_session(video_id)
        return self.session

    # --- Resolution ---

    async def resolve_transcript(self, video_id: Optional[str] = None) -> List[TranscriptLine]:
        """
        Return the transcript lines for video_id (default: the current session's video).

        Raises:
            NoVideoDetected: no video id given and no active session
            TranscriptUnavailable: every strategy came back empty
        """
        video_id = video_id or (self.session.video_id if self.session else None)
        if not video_id:
            raise NoVideoDetected()

        session = self._session_for(video_id)
        set_video_ctx(video_id=video_id)
        try:
            if session.cached_lines:
                evt("transcript_cache_hit", video_id=video_id, source="session")
                return list(session.cached_lines)

            cached = self.transcript_cache.get(video_id)
            if cached:
                session.cached_lines = cached
                evt("transcript_cache_hit", video_id=video_id, source="cache")
                return list(cached)

            lines = await self._execute_strategies(video_id, session)
            if lines:
                self.transcript_cache.set(video_id, lines)
                session.cached_lines = lines
                evt("transcript_cache_set", video_id=video_id, lines=len(lines))
                return list(lines)

            evt("transcript_unavailable", video_id=video_id)
            raise TranscriptUnavailable(video_id)
        finally:
            clear_video_ctx()

    async def _execute_strategies(self, video_id: str, session: VideoSession) -> List[TranscriptLine]:
        """
        Run the strategies in order and return the first non-empty result.

        Order:
        1. Structured endpoint (youtubei)
        2. Timed-caption endpoint (timedtext)
        3. Rendered transcript panel (dom_panel)
        """
        plan = [
            ("youtubei", self.config.enable_youtubei, lambda: self.youtubei.fetch(video_id)),
            ("timedtext", self.config.enable_timedtext, lambda: self.timedtext.fetch(video_id, session)),
            ("dom_panel", self.config.enable_dom_panel, lambda: self.dom_panel.fetch(video_id)),
        ]

        for name, enabled, run in plan:
            if not enabled:
                evt("strategy_skipped", strategy=name, video_id=video_id, reason="disabled")
                continue

            set_video_ctx(strategy=name)
            lines: List[TranscriptLine] = []
            try:
                with StrategyTimer(name, video_id=video_id) as timer:
                    lines = dedupe_lines(await run() or [])
                    if lines:
                        timer.mark_success(lines=len(lines))
            except Exception as e:
                error_evt("strategy_exception",
                          strategy=name,
                          video_id=video_id,
                          error_type=classify_error_type(e),
                          detail=str(e)[:160])
                lines = []

            if lines:
                return lines

        return []

    # --- Delivery ---

    async def build_transcript_document(self, video_id: Optional[str] = None) -> str:
        lines = await self.resolve_transcript(video_id)
        metadata = await read_video_metadata(self.page)
        return render_transcript_document(metadata, lines)

    async def copy_transcript(self, video_id: Optional[str] = None) -> str:
        """Write the transcript document to the page clipboard and return it."""
        document = await self.build_transcript_document(video_id)
        await self.page.write_clipboard(document)
        evt("transcript_copied", video_id=video_id or (self.session.video_id if self.session else None))
        return document

    async def transcript_filename(self) -> str:
        return transcript_filename(await read_video_metadata(self.page))
