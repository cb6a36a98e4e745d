"""
Page access layer.

Strategies never touch Playwright directly: they talk to a `PageAccessor`,
which exposes the handful of page reads and DOM interactions transcript
acquisition needs. Element handles follow Playwright's async ElementHandle
surface (`click`, `get_attribute`, `text_content`, `query_selector`,
`query_selector_all`).
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from transcript_errors import ClipboardUnavailable
from transcript_models import VideoMetadata

logger = logging.getLogger(__name__)

TITLE_SELECTOR = 'h1.ytd-watch-metadata yt-formatted-string'
CHANNEL_SELECTOR = 'ytd-video-owner-renderer #text a'
PUBLISHED_SELECTOR = '#info-strings yt-formatted-string'


class PageAccessor(ABC):
    """Read and interact with the currently loaded watch page."""

    @abstractmethod
    def current_url(self) -> str:
        ...

    @abstractmethod
    async def query_selector(self, selector: str):
        ...

    @abstractmethod
    async def query_selector_all(self, selector: str) -> List[Any]:
        ...

    @abstractmethod
    async def ytcfg_get(self, key: str) -> Any:
        """Read a page configuration value, or None when absent."""

    @abstractmethod
    async def initial_data(self) -> Any:
        """The page's initial-data object graph, or None."""

    @abstractmethod
    async def player_response(self) -> Any:
        """The player configuration object, or None."""

    @abstractmethod
    async def document_html(self) -> str:
        ...

    @abstractmethod
    async def resource_entry_names(self) -> List[str]:
        """URLs from the network-timing log, oldest first."""

    @abstractmethod
    async def clear_resource_timings(self) -> None:
        ...

    @abstractmethod
    async def preferred_language(self) -> Optional[str]:
        ...

    @abstractmethod
    async def wait_for_change(self, timeout_ms: int) -> bool:
        """Wait until the document mutates or timeout_ms elapses; True on mutation."""

    @abstractmethod
    async def write_clipboard(self, text: str) -> None:
        """Raises ClipboardUnavailable when the page refuses the write."""


async def poll_until(probe: Callable[[], Awaitable[Any]],
                     timeout_ms: int,
                     interval_ms: int) -> Any:
    """
    Await probe() until it returns a truthy value or the deadline passes.

    Returns the truthy value, or None on timeout. The probe always runs at
    least once.
    """
    deadline = time.monotonic() + max(0, timeout_ms) / 1000
    while True:
        result = await probe()
        if result:
            return result
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        await asyncio.sleep(min(interval_ms / 1000, remaining))


async def wait_for_selector(page: PageAccessor, selector: str, timeout_ms: int, interval_ms: int):
    """Poll for the first element matching selector; None on timeout."""
    return await poll_until(lambda: page.query_selector(selector), timeout_ms, interval_ms)


async def element_text(element) -> str:
    if element is None:
        return ""
    return ((await element.text_content()) or "").strip()


async def read_video_metadata(page: PageAccessor) -> VideoMetadata:
    """Read title, channel, publish date and URL for the document header."""
    title = await element_text(await page.query_selector(TITLE_SELECTOR))
    channel = await element_text(await page.query_selector(CHANNEL_SELECTOR))
    published = await element_text(await page.query_selector(PUBLISHED_SELECTOR))
    return VideoMetadata(
        title=title or "N/A",
        channel=channel or "N/A",
        published=published,
        url=page.current_url(),
    )


# --- Playwright implementation ---

_YTCFG_GET_JS = """(key) => {
    const cfg = window.ytcfg;
    if (!cfg) return null;
    if (typeof cfg.get === 'function') {
        const value = cfg.get(key);
        if (value !== undefined && value !== null) return value;
    }
    if (cfg.data_ && cfg.data_[key] !== undefined) return cfg.data_[key];
    return null;
}"""

_INITIAL_DATA_JS = "() => window.ytInitialData || window.__ytInitialData || null"

_PLAYER_RESPONSE_JS = """() => {
    const flexy = document.querySelector('ytd-watch-flexy');
    if (flexy && flexy.playerResponse) return flexy.playerResponse;
    if (window.ytInitialPlayerResponse) return window.ytInitialPlayerResponse;
    const script = document.querySelector('script#ytInitialPlayerResponse');
    return script ? script.textContent : null;
}"""

_RESOURCE_NAMES_JS = "() => performance.getEntriesByType('resource').map(e => e.name)"

_CLEAR_TIMINGS_JS = "() => { if (performance.clearResourceTimings) performance.clearResourceTimings(); }"

_WAIT_FOR_CHANGE_JS = """(timeoutMs) => new Promise((resolve) => {
    const observer = new MutationObserver(() => {
        observer.disconnect();
        clearTimeout(timer);
        resolve(true);
    });
    const timer = setTimeout(() => {
        observer.disconnect();
        resolve(false);
    }, timeoutMs);
    observer.observe(document.body || document.documentElement, { childList: true, subtree: true });
})"""

_WRITE_CLIPBOARD_JS = """async (text) => {
    if (!navigator.clipboard || !navigator.clipboard.writeText) return false;
    try {
        await navigator.clipboard.writeText(text);
        return true;
    } catch (e) {
        return false;
    }
}"""


class PlaywrightPageAccessor(PageAccessor):
    """PageAccessor over a Playwright async Page."""

    def __init__(self, page):
        self.page = page

    def current_url(self) -> str:
        return self.page.url

    async def query_selector(self, selector: str):
        return await self.page.query_selector(selector)

    async def query_selector_all(self, selector: str) -> List[Any]:
        return await self.page.query_selector_all(selector)

    async def ytcfg_get(self, key: str) -> Any:
        return await self.page.evaluate(_YTCFG_GET_JS, key)

    async def initial_data(self) -> Any:
        return await self.page.evaluate(_INITIAL_DATA_JS)

    async def player_response(self) -> Any:
        value = await self.page.evaluate(_PLAYER_RESPONSE_JS)
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                logger.debug("Inline player response script is not valid JSON")
                return None
        return value

    async def document_html(self) -> str:
        return await self.page.content()

    async def resource_entry_names(self) -> List[str]:
        return await self.page.evaluate(_RESOURCE_NAMES_JS) or []

    async def clear_resource_timings(self) -> None:
        await self.page.evaluate(_CLEAR_TIMINGS_JS)

    async def preferred_language(self) -> Optional[str]:
        return await self.page.evaluate("() => navigator.language || null")

    async def wait_for_change(self, timeout_ms: int) -> bool:
        return bool(await self.page.evaluate(_WAIT_FOR_CHANGE_JS, max(0, int(timeout_ms))))

    async def write_clipboard(self, text: str) -> None:
        if not await self.page.evaluate(_WRITE_CLIPBOARD_JS, text):
            raise ClipboardUnavailable()

    async def cookies(self) -> Dict[str, str]:
        """Cookies for the page's browser context as a name/value map."""
        return {c["name"]: c["value"] for c in await self.page.context.cookies()}

    async def user_agent(self) -> str:
        return await self.page.evaluate("() => navigator.userAgent")
