"""
YouTubei structured-endpoint transcript strategy.

This module provides:
- Transcript request parameter discovery (cache, initial data, page markup,
  then a secondary watch-page fetch)
- Direct POST to /youtubei/v1/get_transcript using ytcfg INNERTUBE_API_KEY
  and INNERTUBE_CONTEXT
- Fallback through alternate-language parameters when the primary
  parameter yields no lines
"""

import copy
import json
from typing import Optional, Dict, Any, List

import httpx

from engine_config import EngineConfig
from http_client import send_with_retry
from logging_setup import get_logger
from log_events import evt, diag_evt, error_evt
from page_accessor import PageAccessor
from transcript_cache import ParamCache, LanguageParamCache
from transcript_errors import ParseError, is_expected_failure, classify_error_type
from transcript_models import ParsedTranscriptResponse, TranscriptLine
from transcript_parsers import parse_transcript_response, find_transcript_param, extract_param_from_html

logger = get_logger(__name__)

GET_TRANSCRIPT_PATH = "/youtubei/v1/get_transcript"


class YoutubeiTranscriptStrategy:
    """
    Fetch transcripts from the platform's internal structured endpoint.

    Every failure is caught at `fetch` and turned into "no result" so the
    engine can move on to the next strategy.
    """

    name = "youtubei"

    def __init__(self, page: PageAccessor, client: httpx.AsyncClient,
                 param_cache: ParamCache, language_cache: LanguageParamCache,
                 config: EngineConfig):
        self.page = page
        self.client = client
        self.param_cache = param_cache
        self.language_cache = language_cache
        self.config = config

    async def fetch(self, video_id: str) -> Optional[List[TranscriptLine]]:
        """
        Resolve transcript lines for video_id, or None.

        Args:
            video_id: Video identifier for the page currently loaded

        Returns:
            Non-empty list of lines if successful, None otherwise
        """
        if not video_id:
            return None

        try:
            params = await self.ensure_transcript_params(video_id)
            if not params:
                evt("youtubei_no_params", video_id=video_id)
                return None

            api_key = await self.page.ytcfg_get("INNERTUBE_API_KEY")
            context = await self.page.ytcfg_get("INNERTUBE_CONTEXT")
            if not (api_key and isinstance(context, dict)):
                evt("youtubei_missing_ctx",
                    video_id=video_id,
                    has_key=bool(api_key),
                    has_ctx=bool(context))
                return None

            headers = await self._client_headers()
            tried = {params}

            first = await self._request_transcript(api_key, context, headers, params)
            self._remember_first_response(video_id, first)
            if first.lines:
                evt("youtubei_fetch_success", video_id=video_id, lines=len(first.lines), param_source="primary")
                return first.lines

            alternates = list(first.language_params) + list(self.language_cache.get(video_id) or [])
            for item in alternates:
                if not item.params or item.params in tried:
                    continue
                tried.add(item.params)

                evt("youtubei_language_fallback", video_id=video_id, language=item.label)
                try:
                    alt = await self._request_transcript(api_key, context, headers, item.params)
                except Exception as e:
                    if not is_expected_failure(e):
                        raise
                    diag_evt("youtubei_language_fallback_failed",
                             video_id=video_id, language=item.label,
                             error_type=classify_error_type(e), detail=str(e)[:100])
                    continue
                if alt.default_param:
                    self.param_cache.set(video_id, alt.default_param)
                if alt.lines:
                    evt("youtubei_fetch_success", video_id=video_id, lines=len(alt.lines),
                        param_source="language_fallback", language=item.label)
                    return alt.lines

            evt("youtubei_no_lines", video_id=video_id, params_tried=len(tried))
            return None

        except Exception as e:
            fields = dict(video_id=video_id, error_type=classify_error_type(e), detail=str(e)[:160])
            if is_expected_failure(e):
                diag_evt("youtubei_fetch_failed", **fields)
            else:
                error_evt("youtubei_fetch_exception", **fields)
            return None

    async def ensure_transcript_params(self, video_id: str) -> Optional[str]:
        """
        Discover the transcript request parameter for video_id.

        First hit wins: ParamCache, the initial-data object graph, the rendered
        page markup, then the markup of a freshly fetched watch page. Any
        discovered parameter is stored in ParamCache.
        """
        cached = self.param_cache.get(video_id)
        if cached:
            evt("youtubei_params_found", video_id=video_id, source="cache")
            return cached

        sources = (
            ("initial_data", self._params_from_initial_data),
            ("document", self._params_from_document),
            ("watch_fetch", lambda: self._params_from_watch_page(video_id)),
        )
        for source, finder in sources:
            try:
                params = await finder()
            except Exception as e:
                diag_evt("youtubei_params_source_failed",
                         video_id=video_id, source=source,
                         error_type=classify_error_type(e), detail=str(e)[:100])
                continue
            if params:
                self.param_cache.set(video_id, params)
                evt("youtubei_params_found", video_id=video_id, source=source)
                return params

        return None

    async def _params_from_initial_data(self) -> Optional[str]:
        return find_transcript_param(await self.page.initial_data())

    async def _params_from_document(self) -> Optional[str]:
        return extract_param_from_html(await self.page.document_html())

    async def _params_from_watch_page(self, video_id: str) -> Optional[str]:
        response = await send_with_retry(
            self.client, "GET", f"{self.config.origin}/watch",
            attempts=self.config.http_retry_attempts,
            params={"v": video_id, "bp": "0"},
        )
        return extract_param_from_html(response.text)

    async def _client_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        client_name = await self.page.ytcfg_get("INNERTUBE_CONTEXT_CLIENT_NAME")
        client_version = await self.page.ytcfg_get("INNERTUBE_CONTEXT_CLIENT_VERSION")
        if client_name:
            headers["X-Youtube-Client-Name"] = str(client_name)
        if client_version:
            headers["X-Youtube-Client-Version"] = str(client_version)
        return headers

    async def _request_transcript(self, api_key: str, context: Dict[str, Any],
                                  headers: Dict[str, str], params: str) -> ParsedTranscriptResponse:
        """POST one get_transcript request; non-2xx raises EndpointHttpError."""
        response = await send_with_retry(
            self.client, "POST", f"{self.config.origin}{GET_TRANSCRIPT_PATH}",
            attempts=self.config.http_retry_attempts,
            params={"key": api_key},
            headers=headers,
            content=json.dumps({"context": copy.deepcopy(context), "params": params}),
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError("get_transcript response is not JSON") from e
        return parse_transcript_response(data)

    def _remember_first_response(self, video_id: str, first: ParsedTranscriptResponse) -> None:
        """Persist parameters exposed by a response before knowing whether lines follow."""
        if first.default_param:
            self.param_cache.set(video_id, first.default_param)
        if first.language_params:
            self.language_cache.set(video_id, list(first.language_params))
            for item in first.language_params:
                if item.selected and item.params:
                    self.param_cache.set(video_id, item.params)
