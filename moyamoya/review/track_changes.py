from __future__ import annotations

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DELETED_CLASS = "redline-deleted"
INSERTED_CLASS = "redline-inserted"
NOTE_CLASS = "review-applied-note"

TRACK_CHANGE_MARKERS = (f'class="{DELETED_CLASS}"', f'class="{INSERTED_CLASS}"', f'class="{NOTE_CLASS}"')

# outcome of mark_change
MARK_VERBATIM = "verbatim"
MARK_ESCAPED = "escaped"
MARK_NOTE = "note"
MARK_MISS = "miss"


def escape_view_text(text: str) -> str:
    """Neutralise raw HTML in markdown before it reaches an unsafe-HTML renderer."""
    return (text or "").replace("&", "&amp;").replace("<", "&lt;")


def render_view(markdown: str) -> str:
    return escape_view_text(markdown)


def has_track_changes(view: str) -> bool:
    return any(m in (view or "") for m in TRACK_CHANGE_MARKERS)


class ArtifactViews:
    """
    Rendered projection of each artifact. Always derivable from source;
    track-change marks live only here until the view is re-rendered.
    """

    def __init__(self) -> None:
        self._views: Dict[str, str] = {}

    def get(self, tab: str) -> Optional[str]:
        return self._views.get(tab)

    def render(self, tab: str, markdown: str) -> str:
        self._views[tab] = render_view(markdown)
        return self._views[tab]

    def render_all(self, artifacts) -> None:
        """`artifacts` is anything iterable over tab keys with .get(tab)."""
        for tab in artifacts:
            self.render(tab, artifacts.get(tab))

    def mark_change(self, tab: str, before: str, after: str, *, source_changed: bool) -> str:
        """
        Strike `before` and insert `after` in the view.
        Falls back to a note above the view when only the source matched.
        Never raises on a miss.
        """
        view = self._views.get(tab)
        if view is None or not before:
            return MARK_MISS

        inserted = f'<span class="{INSERTED_CLASS}">{escape_view_text(after)}</span>'

        if before in view:
            self._views[tab] = view.replace(
                before, f'<span class="{DELETED_CLASS}">{before}</span> {inserted}', 1
            )
            return MARK_VERBATIM

        escaped_before = escape_view_text(before)
        if escaped_before in view:
            self._views[tab] = view.replace(
                escaped_before, f'<span class="{DELETED_CLASS}">{escaped_before}</span> {inserted}', 1
            )
            return MARK_ESCAPED

        if source_changed:
            note = f'<p class="{NOTE_CLASS}">✍️ 反映: {escape_view_text(after)}</p>\n\n'
            self._views[tab] = note + view
            return MARK_NOTE

        logger.info("track change miss on %s: %.40s", tab, before)
        return MARK_MISS
