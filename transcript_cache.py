import logging
from typing import Optional, Dict, Any, List, Iterator, Generic, TypeVar

from transcript_models import TranscriptLine, LanguageParam

V = TypeVar("V")


class InsertionOrderedCache(Generic[V]):
    """
    In-memory mapping bounded by entry count with least-recently-inserted eviction.

    Position is fixed at first insertion: overwriting an existing key or reading
    it does not move it, and the key just written is never the one evicted.
    """

    name = "cache"

    def __init__(self, max_entries: int):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: Dict[str, V] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, video_id: str) -> Optional[V]:
        value = self._entries.get(video_id)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def set(self, video_id: str, value: V) -> bool:
        """Store value for video_id; empty keys or values are ignored."""
        if not video_id or not value:
            logging.debug(f"{self.name}: ignoring empty entry for video {video_id!r}")
            return False

        self._entries[video_id] = value

        if len(self._entries) > self.max_entries:
            oldest_key = next(iter(self._entries))
            if oldest_key != video_id:
                del self._entries[oldest_key]
                self.evictions += 1
                logging.debug(f"{self.name}: evicted {oldest_key} (max_entries={self.max_entries})")

        return True

    def __contains__(self, video_id: str) -> bool:
        return video_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def keys(self) -> List[str]:
        return list(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        return {
            "name": self.name,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }


class TranscriptCache(InsertionOrderedCache[List[TranscriptLine]]):
    """Resolved transcript lines per video."""

    name = "transcript_cache"

    def __init__(self, max_entries: int = 6):
        super().__init__(max_entries)

    def set(self, video_id: str, value: List[TranscriptLine]) -> bool:
        stored = super().set(video_id, list(value or []))
        if stored:
            logging.info(f"Cached transcript for video {video_id} ({len(value)} lines)")
        return stored


class ParamCache(InsertionOrderedCache[str]):
    """Structured-endpoint request parameter per video."""

    name = "param_cache"

    def __init__(self, max_entries: int = 10):
        super().__init__(max_entries)


class LanguageParamCache(InsertionOrderedCache[List[LanguageParam]]):
    """Alternate-language request parameters per video."""

    name = "language_param_cache"

    def __init__(self, max_entries: int = 6):
        super().__init__(max_entries)
