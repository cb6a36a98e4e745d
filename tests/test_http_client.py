#!/usr/bin/env python3
"""
Tests for the shared HTTP helpers: URL masking and transport-only retries.
"""

import asyncio
import warnings
import unittest

import httpx

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from http_client import mask_url_for_logging, send_with_retry, create_http_client
from transcript_errors import EndpointHttpError
from page_fakes import make_client, make_config


class TestMaskUrl(unittest.TestCase):

    def test_sensitive_params_masked(self):
        masked = mask_url_for_logging("https://www.youtube.com/api/timedtext?v=abc&pot=SECRET&key=K&lang=en")
        self.assertNotIn("SECRET", masked)
        self.assertNotIn("key=K", masked)
        self.assertIn("v=abc", masked)
        self.assertIn("lang=en", masked)

    def test_url_without_query_unchanged(self):
        self.assertEqual(mask_url_for_logging("https://www.youtube.com/watch"), "https://www.youtube.com/watch")


class TestSendWithRetry(unittest.TestCase):

    def test_non_2xx_raises_without_retry(self):
        async def run_test():
            client, requests = make_client(lambda request: httpx.Response(500))
            async with client:
                with self.assertRaises(EndpointHttpError) as ctx:
                    await send_with_retry(client, "GET", "https://example.test/x", attempts=3)
            self.assertEqual(ctx.exception.status, 500)
            self.assertEqual(len(requests), 1)

        asyncio.run(run_test())

    def test_transport_error_is_retried(self):
        async def run_test():
            calls = []

            def handler(request):
                calls.append(request)
                if len(calls) == 1:
                    raise httpx.ConnectError("boom", request=request)
                return httpx.Response(200, text="ok")

            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            async with client:
                response = await send_with_retry(client, "GET", "https://example.test/x", attempts=2)
            self.assertEqual(response.text, "ok")
            self.assertEqual(len(calls), 2)

        asyncio.run(run_test())

    def test_retry_backoff_emits_no_deprecation_warning(self):
        async def run_test():
            calls = []

            def handler(request):
                calls.append(request)
                if len(calls) == 1:
                    raise httpx.ConnectError("blip", request=request)
                return httpx.Response(200, text="ok")

            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            async with client:
                return await send_with_retry(client, "GET", "https://example.test/x", attempts=2)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            response = asyncio.run(run_test())

        self.assertEqual(response.text, "ok")
        deprecations = [w for w in caught if issubclass(w.category, DeprecationWarning)
                        and ("tenacity" in (w.filename or "") or "http_client" in (w.filename or "")
                             or "initial" in str(w.message))]
        self.assertEqual(deprecations, [])

    def test_transport_error_reraised_after_last_attempt(self):
        async def run_test():
            def handler(request):
                raise httpx.ConnectError("down", request=request)

            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            async with client:
                with self.assertRaises(httpx.ConnectError):
                    await send_with_retry(client, "GET", "https://example.test/x", attempts=1)

        asyncio.run(run_test())


class TestCreateHttpClient(unittest.TestCase):

    def test_headers_cookies_and_timeout(self):
        async def run_test():
            config = make_config(http_timeout_seconds=7)
            client = create_http_client(config, cookies={"SID": "abc"}, user_agent="UA/1.0")
            async with client:
                self.assertEqual(client.headers["User-Agent"], "UA/1.0")
                self.assertEqual(client.headers["Origin"], config.origin)
                self.assertEqual(client.cookies.get("SID"), "abc")
                self.assertEqual(client.timeout.read, 7.0)

        asyncio.run(run_test())


if __name__ == '__main__':
    unittest.main()
