from __future__ import annotations

from typing import Sequence

from ..core.types import ReviewerPersona


def match_persona(reviews: Sequence[ReviewerPersona], section_index: int, section_title: str) -> int:
    """
    Pick the reviewer for a section: the one whose name appears in the
    section title, else the one at the section's position, else the first.
    """
    if not reviews:
        return 0
    match = section_index if 0 <= section_index < len(reviews) else 0
    for i, r in enumerate(reviews):
        if r.persona and r.persona in (section_title or ""):
            return i
    return match
