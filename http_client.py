"""
Shared async HTTP plumbing for the structured and timed-caption strategies.

Requests go out through one httpx.AsyncClient carrying the page's cookies
and user agent. Transport failures are retried with tenacity; HTTP status
failures are not retried and surface as EndpointHttpError.
"""

import logging
from typing import Optional, Dict
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, wait_random, retry_if_exception_type

from engine_config import EngineConfig
from transcript_errors import EndpointHttpError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

BACKOFF_INITIAL_SECONDS = 0.2
BACKOFF_MAX_SECONDS = 2.0
BACKOFF_JITTER_SECONDS = 0.2

SENSITIVE_PARAMS = {'key', 'pot', 'token', 'auth', 'session', 'sig', 'signature'}


def mask_url_for_logging(url: str) -> str:
    """Mask sensitive query parameters in URLs for logging."""
    try:
        parsed = urlparse(url)
        if not parsed.query:
            return url
        params = parse_qs(parsed.query, keep_blank_values=True)
        masked_params = {
            key: ['***MASKED***'] * len(values) if key.lower() in SENSITIVE_PARAMS else values
            for key, values in params.items()
        }
        return urlunparse(parsed._replace(query=urlencode(masked_params, doseq=True)))
    except Exception:
        return f"{url.split('?')[0]}?***MASKED_QUERY***" if '?' in url else url


def create_http_client(config: EngineConfig,
                       cookies: Optional[Dict[str, str]] = None,
                       user_agent: Optional[str] = None,
                       transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """
    Build the client used for all platform requests.

    `cookies` and `user_agent` should come from the browser context so
    requests are issued with the same credentials as the page.
    """
    headers = {
        "User-Agent": user_agent or DEFAULT_USER_AGENT,
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
        "Origin": config.origin,
    }
    return httpx.AsyncClient(
        timeout=httpx.Timeout(float(config.http_timeout_seconds)),
        headers=headers,
        cookies=cookies or {},
        follow_redirects=True,
        transport=transport,
    )


async def send_with_retry(client: httpx.AsyncClient,
                          method: str,
                          url: str,
                          attempts: int = 2,
                          **kwargs) -> httpx.Response:
    """
    Send a request, retrying transport failures only.

    Raises:
        EndpointHttpError: response status outside 2xx
        httpx.TransportError: every attempt failed at the transport level
    """
    masked = mask_url_for_logging(url)

    def _log_retry(retry_state):
        logger.info(f"Request to {masked} failed, retrying in {retry_state.next_action.sleep:.2f}s...")

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=(wait_exponential(multiplier=BACKOFF_INITIAL_SECONDS, max=BACKOFF_MAX_SECONDS)
              + wait_random(0, BACKOFF_JITTER_SECONDS)),
        retry=retry_if_exception_type(httpx.TransportError),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            response = await client.request(method, url, **kwargs)

    if not response.is_success:
        raise EndpointHttpError(response.status_code, masked)
    return response
