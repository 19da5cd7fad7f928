from __future__ import annotations

from typing import Dict, Iterator, Mapping, Optional

from ..review.fuzzy import replace_once_flexible
from .constants import ARTIFACT_KEYS


class ArtifactSet:
    """
    Markdown source for the four generated documents.
    Source of truth for rendering and export; every write is a full-value replace.
    """

    def __init__(self, outputs: Optional[Mapping[str, str]] = None):
        outputs = outputs or {}
        self._sources: Dict[str, str] = {k: str(outputs.get(k) or "") for k in ARTIFACT_KEYS}

    def __iter__(self) -> Iterator[str]:
        return iter(ARTIFACT_KEYS)

    def __contains__(self, tab: object) -> bool:
        return tab in self._sources

    def get(self, tab: str) -> str:
        self._check(tab)
        return self._sources[tab]

    def replace(self, tab: str, markdown: str) -> None:
        self._check(tab)
        self._sources[tab] = str(markdown or "")

    def apply_edit(self, tab: str, before: str, after: str) -> bool:
        """Fuzzy apply of one edit. A miss leaves the source untouched."""
        self._check(tab)
        changed, text = replace_once_flexible(self._sources[tab], before, after)
        if changed:
            self._sources[tab] = text
        return changed

    def excerpt(self, tab: str, limit: int = 500) -> str:
        return self.get(tab)[:limit]

    def to_dict(self) -> Dict[str, str]:
        return dict(self._sources)

    def _check(self, tab: str) -> None:
        if tab not in self._sources:
            raise KeyError(f"Unknown artifact: {tab}")
