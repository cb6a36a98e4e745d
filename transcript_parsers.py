"""
Response parsers for the three transcript sources.

- Timed-caption bodies: JSON "events" (json3) or the legacy XML caption
  schema, optionally behind an anti-JSON-hijacking guard prefix.
- Structured-endpoint responses: transcript panels located anywhere in the
  response graph by shape, plus the language menu parameters they expose.
- Page state: the transcript request parameter embedded in the initial-data
  object graph or in raw page markup.

Graph searches are breadth-first over an explicit queue with an identity
based visited set, so cyclic or very deep graphs never hit the recursion
limit.
"""

import json
import re
import xml.etree.ElementTree as ET
from collections import deque
from typing import Any, Dict, Iterable, Iterator, List, Optional

from log_events import diag_evt
from text_utils import collapse_whitespace, decode_param, format_timestamp_ms
from transcript_errors import ParseError
from transcript_models import LanguageParam, ParsedTranscriptResponse, TranscriptLine

_JSON_GUARD_RE = re.compile(r"^\)\]\}'\s*")
TRANSCRIPT_PARAM_MARKER = '"getTranscriptEndpoint":{"params":"'

_HTML_INDICATORS = ("<!doctype html", "<html")


# --- Generic helpers ---

def _dig(obj: Any, *keys) -> Any:
    """Walk nested dicts, returning None at the first missing or non-dict hop."""
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _first_present(obj: dict, *keys) -> Any:
    for key in keys:
        value = obj.get(key)
        if value is not None:
            return value
    return None


def iter_graph(root: Any) -> Iterator[Any]:
    """Yield every dict and list reachable from root, breadth-first, once each."""
    if not isinstance(root, (dict, list)):
        return
    queue = deque([root])
    seen = set()
    while queue:
        current = queue.popleft()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        children: Iterable = current.values() if isinstance(current, dict) else current
        for value in children:
            if isinstance(value, (dict, list)):
                queue.append(value)


def dedupe_lines(lines: Iterable[TranscriptLine]) -> List[TranscriptLine]:
    """Drop lines whose text was already seen, keeping the first occurrence and order."""
    seen = set()
    result = []
    for line in lines or []:
        if not line or not line.text:
            continue
        if line.text in seen:
            continue
        seen.add(line.text)
        result.append(line)
    return result


# --- Timed-caption bodies ---

def strip_json_guard(raw: Optional[str]) -> str:
    return _JSON_GUARD_RE.sub("", raw or "").strip()


def has_transcript_events(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("events"), list) and bool(data["events"])


def lines_from_events(events: Iterable[dict]) -> List[TranscriptLine]:
    """Turn caption events into lines: one line per event with non-empty segment text."""
    lines = []
    for event in events or []:
        if not isinstance(event, dict):
            continue
        segs = event.get("segs")
        if not isinstance(segs, list):
            continue
        text = collapse_whitespace("".join(
            (seg.get("utf8") if isinstance(seg, dict) else "") or "" for seg in segs))
        if not text:
            continue
        lines.append(TranscriptLine(format_timestamp_ms(event.get("tStartMs")), text))
    return lines


def parse_timedtext_xml(xml_string: str) -> Dict[str, List[dict]]:
    """
    Parse the legacy caption XML schema into the json3 events shape.

    Start offsets come from the integer-millisecond `t` attribute when present,
    otherwise from the fractional-second `start` attribute.
    """
    lowered = xml_string.lower()
    if any(indicator in lowered for indicator in _HTML_INDICATORS):
        raise ParseError("html_response")

    try:
        root = ET.fromstring(xml_string)
    except ET.ParseError as e:
        raise ParseError(f"xml_parse_error: {str(e)[:100]}") from e

    nodes = root.findall(".//text")
    if not nodes:
        raise ParseError("no_text_nodes")

    events = []
    for node in nodes:
        start_ms = 0
        t_attr = node.get("t")
        start_attr = node.get("start")
        try:
            if t_attr is not None:
                start_ms = round(float(t_attr))
            elif start_attr is not None:
                start_ms = round(float(start_attr) * 1000)
        except (ValueError, OverflowError):
            start_ms = 0
        events.append({
            "tStartMs": start_ms,
            "segs": [{"utf8": collapse_whitespace("".join(node.itertext()))}],
        })
    return {"events": events}


def parse_timedtext_body(raw: Optional[str]) -> Optional[Any]:
    """
    Parse a timed-caption response body.

    Returns None when the body is empty after guard stripping. Raises
    ParseError for malformed JSON or XML and for unrecognized shapes.
    """
    cleaned = strip_json_guard(raw)
    if not cleaned:
        return None

    if cleaned[0] in "{[":
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise ParseError(f"json_decode_error: {e.msg}") from e

    if cleaned.startswith("<"):
        return parse_timedtext_xml(cleaned)

    raise ParseError("unknown_format")


# --- Structured endpoint responses ---

def collect_transcript_panels(data: Any) -> List[dict]:
    """Find every container exposing a transcript segment-list body, in BFS order."""
    panels = []
    panel_ids = set()

    def add(panel: dict):
        if id(panel) not in panel_ids:
            panel_ids.add(id(panel))
            panels.append(panel)

    for node in iter_graph(data):
        if not isinstance(node, dict):
            continue
        search_panel = node.get("transcriptSearchPanelRenderer")
        renderer = node.get("transcriptRenderer")
        if isinstance(search_panel, dict) and search_panel.get("body"):
            add(search_panel)
        elif isinstance(renderer, dict) and renderer.get("body"):
            add(renderer)
        elif _dig(node, "body", "transcriptSegmentListRenderer"):
            add(node)
    return panels


def _segment_line(item: Any) -> Optional[TranscriptLine]:
    if not isinstance(item, dict):
        return None
    seg = (item.get("transcriptSegmentRenderer")
           or _dig(item, "transcriptSearchPanelSegmentRenderer", "segment")
           or item.get("segment")
           or item)
    if not isinstance(seg, dict):
        return None

    runs = (_dig(seg, "snippet", "runs")
            or _dig(seg, "subtitleText", "runs")
            or _dig(seg, "bodyText", "runs")
            or [])
    if not isinstance(runs, list):
        return None
    text = collapse_whitespace("".join(
        (run.get("text") if isinstance(run, dict) else "") or "" for run in runs))
    if not text:
        return None

    start_ms = _first_present(seg, "startMs", "startTimeMs", "tStartMs", "startTime")
    return TranscriptLine(format_timestamp_ms(start_ms), text)


def parse_transcript_response(data: Any) -> ParsedTranscriptResponse:
    """
    Extract lines, the default parameter and language-menu parameters from a
    structured-endpoint response of unknown shape.
    """
    result = ParsedTranscriptResponse()
    lines: List[TranscriptLine] = []

    for panel in collect_transcript_panels(data):
        renderer = panel.get("transcriptSearchPanelRenderer") or panel.get("transcriptRenderer") or panel
        if not isinstance(renderer, dict):
            continue

        header_param = _dig(renderer, "header", "transcriptSearchBoxRenderer",
                            "onTextChangeCommand", "getTranscriptEndpoint", "params")
        if header_param and not result.default_param:
            result.default_param = decode_param(header_param)

        body = (_dig(renderer, "body", "transcriptSegmentListRenderer")
                or renderer.get("transcriptSegmentListRenderer")
                or renderer.get("segmentListRenderer")
                or renderer)
        segments = []
        if isinstance(body, dict):
            segments = body.get("segments") or body.get("initialSegments") or []
        for item in segments:
            line = _segment_line(item)
            if line:
                lines.append(line)

        footer = (_dig(renderer, "footer", "transcriptFooterRenderer")
                  or renderer.get("transcriptFooterRenderer"))
        menu_items = _dig(footer, "languageMenu", "sortFilterSubMenuRenderer", "subMenuItems") or []
        for item in menu_items:
            if not isinstance(item, dict):
                continue
            label = item.get("title") or ""
            continuation = _dig(item, "continuation", "reloadContinuationData", "continuation")
            if not label or not continuation:
                continue
            decoded = decode_param(continuation)
            selected = bool(item.get("selected"))
            result.language_params.append(LanguageParam(label=label, params=decoded, selected=selected))
            if selected:
                result.default_param = decoded

    result.lines = dedupe_lines(lines)
    diag_evt("transcript_response_parsed",
             lines=len(result.lines),
             language_params=len(result.language_params),
             has_default_param=bool(result.default_param))
    return result


# --- Page state ---

def find_transcript_param(root: Any) -> Optional[str]:
    """Breadth-first search for the first `getTranscriptEndpoint.params` value."""
    for node in iter_graph(root):
        if isinstance(node, dict):
            params = _dig(node, "getTranscriptEndpoint", "params")
            if isinstance(params, str) and params:
                return decode_param(params)
    return None


def extract_param_from_html(html: Optional[str]) -> Optional[str]:
    """Pull the quoted parameter that follows the transcript endpoint marker in page markup."""
    if not html:
        return None
    idx = html.find(TRANSCRIPT_PARAM_MARKER)
    if idx == -1:
        return None
    start = idx + len(TRANSCRIPT_PARAM_MARKER)
    end = html.find('"', start)
    if end == -1:
        return None
    return decode_param(html[start:end]) or None
