from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..core.artifacts import ArtifactSet
from ..core.modal import ModalScope, ModalStack
from ..core.text_service import ServiceError, TextService
from ..core.types import Decision, ReviewerPersona, Suggestion
from .personas import match_persona
from .sections import split_sections
from .track_changes import ArtifactViews

logger = logging.getLogger(__name__)

REVIEW_SCOPE = "review"

ACCEPT = "accept"
REJECT = "reject"
ALTERNATIVE = "alternative"


class ReviewStateError(RuntimeError):
    pass


class ReviewPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    REVIEWING = "reviewing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReviewSummary:
    accepted: int
    rejected: int
    total: int

    def message(self) -> str:
        lines = []
        if self.accepted:
            lines.append(f"✅ {self.accepted}件の改善を反映しました")
        if self.rejected:
            lines.append(f"❌ {self.rejected}件は元のままにしました")
        lines.append("")
        lines.append("📌 文書は見え消しの状態です。「確定して反映する」を押すとクリーンな文書に仕上がります。")
        return "\n".join(lines).strip()


class ReviewSession:
    """
    Walks the user through one reviewer's suggestions for one messages section.

    idle -> loading -> reviewing(i) -> complete -> idle (finalize/close)
    loading -> cancelled on critique failure (request stays retryable).
    Accept/alternative edit the artifact source right away and mark the
    view; skipping keeps those edits.
    """

    def __init__(
        self,
        service: TextService,
        artifacts: ArtifactSet,
        views: ArtifactViews,
        *,
        modals: Optional[ModalStack] = None,
        emit: Optional[Callable[..., None]] = None,
    ):
        self.service = service
        self.artifacts = artifacts
        self.views = views
        self.modals = modals or ModalStack()
        self._emit = emit

        self.phase = ReviewPhase.IDLE
        self.section_index: Optional[int] = None
        self.section_title = ""
        self.reviews: List[ReviewerPersona] = []
        self.suggestions: List[Suggestion] = []
        self.decisions: List[Decision] = []
        self.index = 0
        self.reviewed_sections: List[int] = []
        self._request_seq = 0
        self._scope: Optional[ModalScope] = None

    # -----------------------------
    # Read helpers
    # -----------------------------
    @property
    def current_suggestion(self) -> Optional[Suggestion]:
        if self.phase != ReviewPhase.REVIEWING or self.index >= len(self.suggestions):
            return None
        return self.suggestions[self.index]

    @property
    def reviewer(self) -> Optional[ReviewerPersona]:
        return self.reviews[0] if self.reviews else None

    @property
    def active(self) -> bool:
        return self.phase in (ReviewPhase.LOADING, ReviewPhase.REVIEWING, ReviewPhase.COMPLETE)

    def summary(self) -> ReviewSummary:
        accepted = sum(1 for d in self.decisions if d.action != REJECT)
        rejected = sum(1 for d in self.decisions if d.action == REJECT)
        return ReviewSummary(accepted=accepted, rejected=rejected, total=len(self.suggestions))

    def is_reviewed(self, section_index: int) -> bool:
        return section_index in self.reviewed_sections

    # -----------------------------
    # Loading
    # -----------------------------
    async def request(self, section_index: int) -> ReviewPhase:
        """Fetch a critique for one messages section. Out-of-range index is a no-op."""
        if self.active:
            raise ReviewStateError(f"review already {self.phase.value}")

        sections = split_sections(self.artifacts.get("messages"))
        if not 0 <= section_index < len(sections):
            return self.phase
        section = sections[section_index]

        self._request_seq += 1
        token = self._request_seq
        self.section_index = section_index
        self.section_title = section.title
        self._scope = self.modals.enter(REVIEW_SCOPE)
        self.phase = ReviewPhase.LOADING
        self._notify("review_loading", section_index=section_index, title=section.title)

        try:
            result = await self.service.expert_review(
                self.artifacts.to_dict(), section_index, section.title, section.text
            )
        except ServiceError as e:
            if self._is_stale(token):
                logger.debug("critique error for section %d arrived after close", section_index)
                return self.phase
            return self._abort(str(e))

        if self._is_stale(token):
            # closed (and maybe re-requested) while the critique was in flight
            logger.debug("critique for section %d arrived after close", section_index)
            return self.phase
        if not result.success:
            return self._abort(result.error_message or result.error_code or "review failed")

        payload: Dict[str, Any] = result.payload or {}
        reviews = [ReviewerPersona.from_dict(r) for r in payload.get("reviews") or [] if isinstance(r, dict)]
        suggestions = [Suggestion.from_dict(s) for s in payload.get("suggestions") or [] if isinstance(s, dict)]

        match = match_persona(reviews, section_index, section.title)
        self.reviews = [reviews[match]] if reviews else []
        self.suggestions = [replace(s, reviewer_index=0) for s in suggestions if s.reviewer_index == match]
        self.decisions = []
        self.index = 0
        self.phase = ReviewPhase.REVIEWING

        if result.is_fallback:
            self._notify("notice", level="info", source=result.source, degraded=result.degraded)
        self._notify("review_loaded", reviewer=self.reviewer, count=len(self.suggestions))

        if not self.suggestions:
            self._complete()
        return self.phase

    def _is_stale(self, token: int) -> bool:
        return token != self._request_seq or self.phase != ReviewPhase.LOADING

    def _abort(self, reason: str) -> ReviewPhase:
        logger.warning("expert review failed: %s", reason)
        self._release_scope()
        self.phase = ReviewPhase.CANCELLED
        self._notify("review_failed", section_index=self.section_index, message="確認に失敗しました。もう一度お試しください。")
        return self.phase

    # -----------------------------
    # Decisions
    # -----------------------------
    def accept(self) -> ReviewPhase:
        s = self._require_current()
        self.decisions.append(Decision(ACCEPT))
        self._apply(s, s.after)
        return self._next()

    def reject(self) -> ReviewPhase:
        self._require_current()
        self.decisions.append(Decision(REJECT))
        return self._next()

    def alternative(self, text: str) -> ReviewPhase:
        s = self._require_current()
        text = (text or "").strip()
        if not text:
            return self.phase
        self.decisions.append(Decision(ALTERNATIVE, text))
        self._apply(s, text)
        return self._next()

    def _require_current(self) -> Suggestion:
        s = self.current_suggestion
        if s is None:
            raise ReviewStateError(f"no suggestion to decide in phase {self.phase.value}")
        return s

    def _apply(self, s: Suggestion, new_text: str) -> None:
        changed = False
        if s.tab in self.artifacts:
            changed = self.artifacts.apply_edit(s.tab, s.before, new_text)
        outcome = self.views.mark_change(s.tab, s.before, new_text, source_changed=changed)
        if not changed:
            logger.info("suggestion %s: before text not found in %s", s.id or self.index, s.tab)
        self._notify("track_change", tab=s.tab, outcome=outcome, source_changed=changed)

    def _next(self) -> ReviewPhase:
        self.index += 1
        if self.index >= len(self.suggestions):
            self._complete()
        else:
            self._notify("review_suggestion", index=self.index)
        return self.phase

    def _complete(self) -> None:
        self.phase = ReviewPhase.COMPLETE
        self._notify("review_complete", summary=self.summary())

    # -----------------------------
    # Exit
    # -----------------------------
    def finalize(self) -> None:
        """Drop all track-change marks by re-rendering every view from source."""
        if self.phase != ReviewPhase.COMPLETE:
            raise ReviewStateError(f"cannot finalize in phase {self.phase.value}")
        self.views.render_all(self.artifacts)
        self._mark_reviewed()
        self.close()

    def skip(self) -> None:
        """Leave the review; edits already applied stay in the source."""
        if self.phase in (ReviewPhase.IDLE, ReviewPhase.CANCELLED):
            return
        self._mark_reviewed()
        self.close()

    def close(self) -> None:
        self._release_scope()
        self.phase = ReviewPhase.IDLE
        self._notify("review_closed")

    def _mark_reviewed(self) -> None:
        if self.section_index is not None and self.section_index not in self.reviewed_sections:
            self.reviewed_sections.append(self.section_index)

    def _release_scope(self) -> None:
        if self._scope is not None:
            self.modals.exit(self._scope)
            self._scope = None

    def _notify(self, kind: str, **payload) -> None:
        if self._emit is not None:
            self._emit(kind, **payload)
