from __future__ import annotations

import html
import itertools
import re
from typing import Iterator, List, Optional

from .types import TranscriptEntry


ACTOR_AI = "ai"
ACTOR_USER = "user"


class Transcript:
    """
    Append-only message history. Entries are tagged with the cursor value
    they were rendered at so backtracking can cut everything from a step on.
    """

    def __init__(self, entries: Optional[List[TranscriptEntry]] = None):
        self._entries: List[TranscriptEntry] = list(entries or [])
        start = len(self._entries) + 1
        self._ids = itertools.count(start)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TranscriptEntry]:
        return iter(list(self._entries))

    @property
    def entries(self) -> List[TranscriptEntry]:
        return list(self._entries)

    def _next_id(self) -> str:
        while True:
            candidate = f"msg-{next(self._ids)}"
            if self.get(candidate) is None:
                return candidate

    def append(self, actor: str, text: str, step: int, *, rich: bool = False) -> TranscriptEntry:
        if actor not in (ACTOR_AI, ACTOR_USER):
            raise ValueError(f"Unknown actor: {actor}")
        entry = TranscriptEntry(id=self._next_id(), actor=actor, text=text, step=step, rich=rich)
        self._entries.append(entry)
        return entry

    def get(self, entry_id: str) -> Optional[TranscriptEntry]:
        for e in self._entries:
            if e.id == entry_id:
                return e
        return None

    def update(self, entry_id: str, text: str) -> bool:
        e = self.get(entry_id)
        if e is None:
            return False
        e.text = text
        return True

    def remove(self, entry_id: str) -> bool:
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.id != entry_id]
        return len(self._entries) != before

    def truncate_from(self, step: int) -> int:
        """Drop every entry tagged with step >= `step`. Returns removed count."""
        kept = [e for e in self._entries if e.step < step]
        removed = len(self._entries) - len(kept)
        self._entries = kept
        return removed


def render_entry_html(entry: TranscriptEntry) -> str:
    """
    Plain entries are escaped; rich entries are trusted internal markup
    (summary cards) whose values were escaped when the card was built.
    """
    if entry.rich:
        return re.sub(r"\n(?!<)", "<br>", entry.text)
    return html.escape(entry.text).replace("\n", "<br>")
