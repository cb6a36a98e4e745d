"""
Data model shared by parsers, strategies and the engine.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional, List


@dataclass(frozen=True)
class TranscriptLine:
    """One timestamped unit of caption text, in source order."""

    timestamp_text: str
    text: str

    def render(self) -> str:
        return f"{self.timestamp_text} {self.text}"

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class CaptionTrack:
    """Caption track descriptor read from the player configuration."""

    base_url: str
    language_code: str = ""
    kind: Optional[str] = None

    @classmethod
    def from_player_track(cls, track: dict) -> Optional['CaptionTrack']:
        if not isinstance(track, dict):
            return None
        return cls(
            base_url=track.get("baseUrl") or "",
            language_code=track.get("languageCode") or "",
            kind=track.get("kind") or None,
        )


@dataclass(frozen=True)
class LanguageParam:
    """Alternate-language request parameter from a transcript language menu."""

    label: str
    params: str
    selected: bool = False


@dataclass
class ParsedTranscriptResponse:
    """Result of parsing one structured-endpoint response."""

    lines: List[TranscriptLine] = field(default_factory=list)
    default_param: Optional[str] = None
    language_params: List[LanguageParam] = field(default_factory=list)


@dataclass(frozen=True)
class VideoMetadata:
    """Header fields for the exported transcript document."""

    title: str = "N/A"
    channel: str = "N/A"
    published: str = ""
    url: str = ""


@dataclass
class VideoSession:
    """
    State scoped to the video currently being viewed.

    Replaced (never mutated into another video) when the active video
    changes, so a strategy still running for a stale video only ever writes
    into its own session object.
    """

    video_id: str
    cached_lines: Optional[List[TranscriptLine]] = None
    access_token: Optional[str] = None
    token_capture_in_flight: Optional[asyncio.Future] = None
