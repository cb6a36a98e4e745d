"""
Rendered transcript panel strategy.

Last resort when both network strategies fail: open the page's transcript
panel if needed, make sure the transcript tab (not chapters) is active, and
read timestamp/text pairs from the rendered segment elements.
"""

import asyncio
import time
from typing import List, Optional

from engine_config import EngineConfig
from logging_setup import get_logger
from log_events import evt, diag_evt, error_evt
from page_accessor import PageAccessor, poll_until, wait_for_selector
from text_utils import collapse_whitespace, normalize_label
from transcript_errors import classify_error_type
from transcript_models import TranscriptLine

logger = get_logger(__name__)

# Segment containers across page UI versions; first selector with matches wins
SEGMENT_SELECTORS = [
    'ytd-transcript-search-panel-renderer ytd-transcript-segment-renderer',
    'ytd-engagement-panel-section-list-renderer[target-id="engagement-panel-searchable-transcript"] ytd-transcript-segment-renderer',
    '#segments-container ytd-transcript-segment-renderer',
    'ytd-transcript-renderer .cue-group',
    'yt-transcript-segment-list-renderer yt-transcript-segment-renderer',
    'ytd-transcript-segment-list-renderer ytd-transcript-segment-renderer',
]
SEGMENT_TIME_SELECTOR = '.segment-timestamp, .cue-group-start-offset, .cue-time, .timestamp'
SEGMENT_TEXT_SELECTOR = '.segment-text, .cue, .cue-text, yt-formatted-string'

TRANSCRIPT_BUTTON_SELECTORS = [
    'button[aria-label*="transcript" i]',
    'button[aria-label*="transcription" i]',
    'tp-yt-paper-item[aria-label*="transcript" i]',
    'tp-yt-paper-item[aria-label*="transcription" i]',
    'yt-formatted-string[aria-label*="transcript" i]',
    'yt-formatted-string[aria-label*="transcription" i]',
]
OVERFLOW_MENU_SELECTOR = '#menu button[aria-label*="more actions" i], #actions button[aria-label*="more actions" i]'

TABLIST_SELECTOR = 'chip-bar-view-model[role="tablist"], ytd-transcript-search-panel-renderer [role="tablist"]'
TAB_SELECTOR = 'button[role="tab"], tp-yt-paper-tab'
TRANSCRIPT_TAB_KEYWORDS = [
    'transcript',
    'transcription',
    'transcripcion',
    'transcricao',
    'transkripsjon',
    'transkript',
    'trascrizione',
]
CHAPTER_TAB_KEYWORDS = ['chapitre', 'chapters', 'chapter', 'capit', 'kapitel']

# Tab switch settle times (milliseconds)
CHAPTER_TO_TRANSCRIPT_DELAY_MS = 800
TRANSCRIPT_TAB_SETTLE_MS = 300
TRANSCRIPT_TAB_CLICK_DELAY_MS = 120


async def tab_label(tab) -> str:
    label = (await tab.get_attribute("aria-label")) or (await tab.text_content()) or ""
    return normalize_label(label.strip())


class TranscriptPanelStrategy:
    """Scrape transcript lines from the rendered transcript panel."""

    name = "dom_panel"

    def __init__(self, page: PageAccessor, config: EngineConfig):
        self.page = page
        self.config = config

    async def fetch(self, video_id: str) -> Optional[List[TranscriptLine]]:
        try:
            nodes = await self.query_segment_nodes()
            if nodes:
                await self.ensure_transcript_tab_selected()
                nodes = await self.query_segment_nodes() or nodes
            else:
                await self.open_transcript_panel()
                await self.ensure_transcript_tab_selected()
                nodes = await self.wait_for_segment_nodes(self.config.panel_wait_ms)

            if not nodes:
                evt("dom_panel_no_segments", video_id=video_id)
                return None

            lines = await self.read_lines(nodes)
            evt("dom_panel_segments_read", video_id=video_id, segments=len(nodes), lines=len(lines))
            return lines or None

        except Exception as e:
            error_evt("dom_panel_exception",
                      video_id=video_id,
                      error_type=classify_error_type(e),
                      detail=str(e)[:160])
            return None

    async def query_segment_nodes(self) -> list:
        for selector in SEGMENT_SELECTORS:
            nodes = await self.page.query_selector_all(selector)
            if nodes:
                return list(nodes)
        return []

    async def wait_for_segment_nodes(self, timeout_ms: int) -> list:
        """Re-query on every document change until segments appear or timeout_ms passes."""
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            nodes = await self.query_segment_nodes()
            if nodes:
                return nodes
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            if remaining_ms <= 0:
                return []
            await self.page.wait_for_change(remaining_ms)

    async def find_transcript_button(self):
        for selector in TRANSCRIPT_BUTTON_SELECTORS:
            element = await self.page.query_selector(selector)
            if element:
                return element
        return None

    async def open_transcript_panel(self) -> bool:
        """Click a transcript control, going through the overflow menu if none is visible."""
        button = await self.find_transcript_button()
        if button:
            await button.click()
            evt("dom_panel_opened", via="button")
            return True

        overflow = await self.page.query_selector(OVERFLOW_MENU_SELECTOR)
        if not overflow:
            diag_evt("dom_panel_no_open_control")
            return False

        await overflow.click()
        item = await poll_until(self.find_transcript_button,
                                self.config.menu_item_wait_ms,
                                self.config.element_poll_interval_ms)
        if not item:
            diag_evt("dom_panel_menu_item_missing")
            return False

        await item.click()
        evt("dom_panel_opened", via="overflow_menu")
        return True

    async def ensure_transcript_tab_selected(self) -> None:
        tablist = await wait_for_selector(self.page, TABLIST_SELECTOR,
                                          self.config.tablist_wait_ms,
                                          self.config.element_poll_interval_ms)
        if not tablist:
            return

        tabs = await tablist.query_selector_all(TAB_SELECTOR)
        if not tabs:
            return

        chapter_tab = None
        transcript_tab = None
        for tab in tabs:
            label = await tab_label(tab)
            if not label:
                continue
            if chapter_tab is None and any(k in label for k in CHAPTER_TAB_KEYWORDS):
                chapter_tab = tab
            if transcript_tab is None and any(k in label for k in TRANSCRIPT_TAB_KEYWORDS):
                transcript_tab = tab

        if not transcript_tab or (await transcript_tab.get_attribute("aria-selected")) == "true":
            return

        if chapter_tab:
            await chapter_tab.click()
            await asyncio.sleep(CHAPTER_TO_TRANSCRIPT_DELAY_MS / 1000)
            await transcript_tab.click()
            await asyncio.sleep(TRANSCRIPT_TAB_SETTLE_MS / 1000)
        else:
            await transcript_tab.click()
            await asyncio.sleep(TRANSCRIPT_TAB_CLICK_DELAY_MS / 1000)
        diag_evt("dom_panel_tab_switched", via_chapters=bool(chapter_tab))

    async def read_lines(self, nodes: list) -> List[TranscriptLine]:
        """A line is emitted only when both a timestamp and non-empty text are present."""
        lines = []
        for node in nodes:
            time_el = await node.query_selector(SEGMENT_TIME_SELECTOR)
            text_el = await node.query_selector(SEGMENT_TEXT_SELECTOR)
            timestamp = ((await time_el.text_content()) or "").strip() if time_el else ""
            text = collapse_whitespace(await text_el.text_content()) if text_el else ""
            if timestamp and text:
                lines.append(TranscriptLine(timestamp, text))
        return lines
