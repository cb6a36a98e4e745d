#!/usr/bin/env python3
"""
Tests for the structured-endpoint strategy: parameter discovery order,
request shape, language fallback and graceful degradation.
"""

import asyncio
import json
import unittest
from unittest.mock import patch

import httpx

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from youtubei_service import YoutubeiTranscriptStrategy
from transcript_cache import ParamCache, LanguageParamCache
from transcript_models import LanguageParam, TranscriptLine
from page_fakes import FakePage, make_client, make_config, transcript_response

INITIAL_DATA = {"engagementPanels": [{"x": {"getTranscriptEndpoint": {"params": "P\\u0026INIT"}}}]}


class TestYoutubeiStrategy(unittest.TestCase):

    def setUp(self):
        self.page = FakePage(initial=INITIAL_DATA)
        self.config = make_config()
        self.param_cache = ParamCache()
        self.language_cache = LanguageParamCache()

    def _strategy(self, client):
        return YoutubeiTranscriptStrategy(self.page, client, self.param_cache, self.language_cache, self.config)

    def _post_handler(self, responses):
        """Map request params -> response body (dict) or status code (int)."""
        def handler(request):
            if request.method != "POST":
                return httpx.Response(404)
            params = json.loads(request.content)["params"]
            value = responses.get(params, 404)
            if isinstance(value, int):
                return httpx.Response(value)
            return httpx.Response(200, json=value)
        return handler

    def test_request_shape_and_success(self):
        async def run_test():
            client, requests = make_client(self._post_handler({"P&INIT": transcript_response([(0, "hi"), (2000, "there")])}))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines, [TranscriptLine("0:00", "hi"), TranscriptLine("0:02", "there")])
            self.assertEqual(len(requests), 1)
            request = requests[0]
            self.assertEqual(request.url.path, "/youtubei/v1/get_transcript")
            self.assertEqual(request.url.params.get("key"), "test-key")
            self.assertEqual(request.headers["X-Youtube-Client-Name"], "1")
            self.assertEqual(request.headers["X-Youtube-Client-Version"], "2.0")
            body = json.loads(request.content)
            self.assertEqual(body["params"], "P&INIT")
            self.assertEqual(body["context"]["client"]["clientName"], "WEB")
            self.assertEqual(self.param_cache.get("vid123"), "P&INIT")

        asyncio.run(run_test())

    def test_cached_param_wins(self):
        async def run_test():
            self.param_cache.set("vid123", "P-CACHED")
            client, requests = make_client(self._post_handler({"P-CACHED": transcript_response([(0, "cached")])}))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines[0].text, "cached")
            self.assertEqual(json.loads(requests[0].content)["params"], "P-CACHED")

        asyncio.run(run_test())

    def test_param_from_page_markup(self):
        async def run_test():
            self.page.initial = {"nothing": "here"}
            self.page.html = '<script>{"getTranscriptEndpoint":{"params":"P-HTML"}}</script>'
            client, requests = make_client(self._post_handler({"P-HTML": transcript_response([(0, "markup")])}))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines[0].text, "markup")
            self.assertEqual(len(requests), 1)

        asyncio.run(run_test())

    def test_param_from_watch_page_fetch(self):
        async def run_test():
            self.page.initial = None

            def handler(request):
                if request.method == "GET":
                    self.assertEqual(request.url.path, "/watch")
                    self.assertEqual(request.url.params.get("v"), "vid123")
                    self.assertEqual(request.url.params.get("bp"), "0")
                    return httpx.Response(200, text='x "getTranscriptEndpoint":{"params":"P-WATCH"} y')
                return httpx.Response(200, json=transcript_response([(0, "fetched")]))

            client, requests = make_client(handler)
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines[0].text, "fetched")
            self.assertEqual([r.method for r in requests], ["GET", "POST"])
            self.assertEqual(self.param_cache.get("vid123"), "P-WATCH")

        asyncio.run(run_test())

    def test_no_param_is_no_result(self):
        async def run_test():
            self.page.initial = None
            client, requests = make_client(lambda r: httpx.Response(200, text="<html></html>"))
            async with client:
                with patch('youtubei_service.evt') as mock_evt:
                    lines = await self._strategy(client).fetch("vid123")

            self.assertIsNone(lines)
            self.assertEqual([r.method for r in requests], ["GET"])
            events = [call[0][0] for call in mock_evt.call_args_list]
            self.assertIn("youtubei_no_params", events)

        asyncio.run(run_test())

    def test_missing_api_key_is_no_result(self):
        async def run_test():
            del self.page.ytcfg["INNERTUBE_API_KEY"]
            client, requests = make_client(lambda r: httpx.Response(200))
            async with client:
                self.assertIsNone(await self._strategy(client).fetch("vid123"))
            self.assertEqual(requests, [])

        asyncio.run(run_test())

    def test_http_error_is_swallowed(self):
        async def run_test():
            client, requests = make_client(self._post_handler({"P&INIT": 500}))
            async with client:
                with patch('youtubei_service.diag_evt') as mock_diag:
                    lines = await self._strategy(client).fetch("vid123")

            self.assertIsNone(lines)
            self.assertEqual(len(requests), 1)
            self.assertEqual(mock_diag.call_args[0][0], "youtubei_fetch_failed")
            self.assertEqual(mock_diag.call_args[1]["error_type"], "http_error")

        asyncio.run(run_test())

    def test_language_fallback_after_empty_primary(self):
        async def run_test():
            responses = {
                "P&INIT": transcript_response([], language_items=[
                    ("English (auto)", "P-EN", True),
                    ("French", "P-FR", False),
                ]),
                "P-EN": transcript_response([]),
                "P-FR": transcript_response([(0, "bonjour")]),
            }
            client, requests = make_client(self._post_handler(responses))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines, [TranscriptLine("0:00", "bonjour")])
            sent = [json.loads(r.content)["params"] for r in requests]
            self.assertEqual(sent, ["P&INIT", "P-EN", "P-FR"])
            # Selected-language param stored as soon as the first response exposed it
            self.assertEqual(self.param_cache.get("vid123"), "P-EN")
            self.assertEqual([p.params for p in self.language_cache.get("vid123")], ["P-EN", "P-FR"])

        asyncio.run(run_test())

    def test_cached_language_params_tried_once(self):
        async def run_test():
            self.language_cache.set("vid123", [LanguageParam("German", "P-DE"), LanguageParam("Dup", "P&INIT")])
            responses = {
                "P&INIT": transcript_response([]),
                "P-DE": transcript_response([(1000, "hallo")]),
            }
            client, requests = make_client(self._post_handler(responses))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines[0].text, "hallo")
            sent = [json.loads(r.content)["params"] for r in requests]
            self.assertEqual(sent, ["P&INIT", "P-DE"])

        asyncio.run(run_test())

    def test_all_alternates_empty(self):
        async def run_test():
            responses = {
                "P&INIT": transcript_response([], language_items=[("French", "P-FR", False)]),
                "P-FR": 404,
            }
            client, requests = make_client(self._post_handler(responses))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertIsNone(lines)
            self.assertEqual(len(requests), 2)

        asyncio.run(run_test())

    def test_failing_alternate_does_not_stop_fallback(self):
        async def run_test():
            responses = {
                "P&INIT": transcript_response([], language_items=[("French", "P-FR", False), ("German", "P-DE", False)]),
                "P-FR": 500,
                "P-DE": transcript_response([(0, "hallo")]),
            }
            client, requests = make_client(self._post_handler(responses))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines[0].text, "hallo")
            self.assertEqual(len(requests), 3)

        asyncio.run(run_test())

    def test_page_read_failure_falls_through_sources(self):
        async def run_test():
            async def broken_initial_data():
                raise RuntimeError("Execution context was destroyed")

            self.page.initial_data = broken_initial_data
            self.page.html = '"getTranscriptEndpoint":{"params":"P-HTML"}'
            client, requests = make_client(self._post_handler({"P-HTML": transcript_response([(0, "ok")])}))
            async with client:
                lines = await self._strategy(client).fetch("vid123")

            self.assertEqual(lines[0].text, "ok")

        asyncio.run(run_test())


if __name__ == '__main__':
    unittest.main()
