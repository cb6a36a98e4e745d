#!/usr/bin/env python3
"""
Tests for the timed-caption strategy: track choice, candidate URL ordering,
per-candidate failure handling and the token capture retry.
"""

import asyncio
import unittest
from unittest.mock import patch

import httpx

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from timedtext_service import (
    TimedtextTranscriptStrategy, build_candidate_urls, pick_caption_track, caption_tracks,
    with_format_hint, with_token,
)
from token_capture import TokenCapture, SUBTITLE_TOGGLE_SELECTOR
from transcript_models import CaptionTrack, TranscriptLine, VideoSession
from page_fakes import FakePage, FakeElement, make_client, make_config, player_with_tracks, json3_body

BASE = "https://www.youtube.com/api/timedtext?v=vid123&lang=en"


class TestCandidateUrls(unittest.TestCase):

    def test_order_with_token(self):
        self.assertEqual(build_candidate_urls(BASE, "TOK"), [
            BASE + "&fmt=json3&pot=TOK",
            BASE + "&pot=TOK",
            BASE + "&fmt=json3",
            BASE,
        ])

    def test_order_without_token(self):
        self.assertEqual(build_candidate_urls(BASE), [BASE + "&fmt=json3", BASE])

    def test_existing_format_not_overridden_and_deduplicated(self):
        base = BASE + "&fmt=srv3"
        self.assertEqual(with_format_hint(base), base)
        self.assertEqual(build_candidate_urls(base), [base])

    def test_existing_token_replaced(self):
        self.assertEqual(with_token(BASE + "&pot=OLD", "NEW"), BASE + "&pot=NEW")


class TestPickCaptionTrack(unittest.TestCase):

    def setUp(self):
        self.tracks = caption_tracks(player_with_tracks(
            {"baseUrl": "u-asr", "languageCode": "en", "kind": "asr"},
            {"baseUrl": "u-fr", "languageCode": "fr"},
            {"baseUrl": "u-de", "languageCode": "DE"},
        ))

    def test_exact_language_match_case_insensitive(self):
        self.assertEqual(pick_caption_track(self.tracks, "de").base_url, "u-de")

    def test_first_manual_track_without_match(self):
        self.assertEqual(pick_caption_track(self.tracks, "es").base_url, "u-fr")
        self.assertEqual(pick_caption_track(self.tracks, None).base_url, "u-fr")

    def test_first_track_when_all_have_kind(self):
        tracks = [CaptionTrack("a", "en", "asr"), CaptionTrack("b", "fr", "asr")]
        self.assertEqual(pick_caption_track(tracks, "es").base_url, "a")

    def test_no_tracks(self):
        self.assertIsNone(pick_caption_track([], "en"))
        self.assertEqual(caption_tracks(None), [])
        self.assertEqual(caption_tracks({"captions": {}}), [])


class TestTimedtextStrategy(unittest.TestCase):

    def setUp(self):
        self.page = FakePage(player=player_with_tracks({"baseUrl": BASE, "languageCode": "en"}))
        self.config = make_config()
        self.session = VideoSession(video_id="vid123")

    def _strategy(self, client):
        return TimedtextTranscriptStrategy(self.page, client, TokenCapture(self.page, self.config), self.config)

    def test_format_hinted_url_first_without_token(self):
        async def run_test():
            client, requests = make_client(lambda r: httpx.Response(200, text=json3_body((0, "hello"), (1000, "world"))))
            async with client:
                lines = await self._strategy(client).fetch("vid123", self.session)

            self.assertEqual(lines, [TranscriptLine("0:00", "hello"), TranscriptLine("0:01", "world")])
            self.assertEqual(len(requests), 1)
            self.assertEqual(requests[0].url.params.get("fmt"), "json3")
            self.assertIsNone(requests[0].url.params.get("pot"))

        asyncio.run(run_test())

    def test_known_token_used_in_first_candidate(self):
        async def run_test():
            self.session.access_token = "KNOWN"
            client, requests = make_client(lambda r: httpx.Response(200, text=json3_body((0, "x"))))
            async with client:
                await self._strategy(client).fetch("vid123", self.session)

            self.assertEqual(requests[0].url.params.get("fmt"), "json3")
            self.assertEqual(requests[0].url.params.get("pot"), "KNOWN")

        asyncio.run(run_test())

    def test_failed_candidates_fall_through(self):
        async def run_test():
            def handler(request):
                if request.url.params.get("fmt"):
                    return httpx.Response(404)
                return httpx.Response(200, text='<transcript><text start="2">legacy</text></transcript>')

            client, requests = make_client(handler)
            async with client:
                lines = await self._strategy(client).fetch("vid123", self.session)

            self.assertEqual(lines, [TranscriptLine("0:02", "legacy")])
            self.assertEqual(len(requests), 2)

        asyncio.run(run_test())

    def test_drifted_candidate_falls_through_to_next(self):
        async def run_test():
            def handler(request):
                if request.url.params.get("fmt"):
                    return httpx.Response(200, text='{"events":[{"tStartMs":0,"segs":["drifted"]}]}')
                return httpx.Response(200, text=json3_body((0, "good")))

            client, requests = make_client(handler)
            async with client:
                with patch('timedtext_service.error_evt') as mock_error:
                    lines = await self._strategy(client).fetch("vid123", self.session)

            self.assertEqual(lines, [TranscriptLine("0:00", "good")])
            self.assertEqual(len(requests), 2)
            mock_error.assert_not_called()

        asyncio.run(run_test())

    def test_empty_and_malformed_bodies_are_skipped(self):
        async def run_test():
            client, requests = make_client(lambda r: httpx.Response(200, text=")]}'" if r.url.params.get("fmt") else "{bad"))
            async with client:
                with patch('timedtext_service.TokenCapture.ensure_token', return_value=None):
                    lines = await self._strategy(client).fetch("vid123", self.session)

            self.assertIsNone(lines)
            self.assertEqual(len(requests), 2)

        asyncio.run(run_test())

    def test_token_capture_retry_after_tokenless_failure(self):
        async def run_test():
            def on_click(element):
                turning_on = element.attrs["aria-pressed"] != "true"
                element.attrs["aria-pressed"] = "true" if turning_on else "false"
                if turning_on:
                    self.page.resource_entries.append(BASE + "&pot=CAPTURED")

            self.page.elements[SUBTITLE_TOGGLE_SELECTOR] = [FakeElement(attrs={"aria-pressed": "true"}, on_click=on_click)]

            def handler(request):
                if request.url.params.get("pot") == "CAPTURED":
                    return httpx.Response(200, text=json3_body((5000, "gated")))
                return httpx.Response(403)

            client, requests = make_client(handler)
            async with client:
                lines = await self._strategy(client).fetch("vid123", self.session)

            self.assertEqual(lines, [TranscriptLine("0:05", "gated")])
            self.assertEqual(self.session.access_token, "CAPTURED")
            # fmt, base, then fmt+token succeeds
            self.assertEqual(len(requests), 3)
            self.assertEqual(requests[2].url.params.get("fmt"), "json3")

        asyncio.run(run_test())

    def test_no_capture_when_token_was_already_known(self):
        async def run_test():
            self.session.access_token = "STALE"
            client, requests = make_client(lambda r: httpx.Response(403))
            async with client:
                with patch.object(TokenCapture, 'ensure_token') as mock_ensure:
                    lines = await self._strategy(client).fetch("vid123", self.session)

            self.assertIsNone(lines)
            self.assertEqual(len(requests), 4)
            mock_ensure.assert_not_called()

        asyncio.run(run_test())

    def test_no_track_is_no_result(self):
        async def run_test():
            self.page.player = player_with_tracks()
            client, requests = make_client(lambda r: httpx.Response(200))
            async with client:
                with patch('timedtext_service.evt') as mock_evt:
                    lines = await self._strategy(client).fetch("vid123", self.session)

            self.assertIsNone(lines)
            self.assertEqual(requests, [])
            events = [call[0][0] for call in mock_evt.call_args_list]
            self.assertIn("timedtext_no_track", events)

        asyncio.run(run_test())

    def test_configured_language_overrides_page(self):
        async def run_test():
            self.page.player = player_with_tracks(
                {"baseUrl": BASE, "languageCode": "en"},
                {"baseUrl": BASE.replace("lang=en", "lang=fr"), "languageCode": "fr"},
            )
            self.config.preferred_language = "fr"
            client, requests = make_client(lambda r: httpx.Response(200, text=json3_body((0, "bonjour"))))
            async with client:
                await self._strategy(client).fetch("vid123", self.session)

            self.assertEqual(requests[0].url.params.get("lang"), "fr")

        asyncio.run(run_test())


if __name__ == '__main__':
    unittest.main()
