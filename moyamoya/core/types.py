from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from .constants import SOURCE_FALLBACK, SOURCE_LLM, SOURCE_MOCK, SUMMARY_FIELDS


SlotName = str
SlotSnapshot = Mapping[str, Any]


@dataclass(frozen=True)
class Choice:
    label: str
    value: str
    letter: str = ""


@dataclass(frozen=True)
class Step:
    """
    One scripted wizard step.

    `skip` and `dynamic_message` must be pure functions of the slot snapshot.
    `on_select` receives (conversation, value); returning False vetoes the
    automatic advance (the hook is then responsible for continuing the flow).
    """
    id: str
    message: Optional[str] = None
    dynamic_message: Optional[Callable[[SlotSnapshot], str]] = None
    choices: Tuple[Choice, ...] = ()
    slot: Optional[SlotName] = None
    skip: Optional[Callable[[SlotSnapshot], bool]] = None
    on_select: Optional[Callable[[Any, str], Awaitable[bool]]] = None
    allow_other: bool = False
    is_generate_step: bool = False
    # extra slots filled by this step's hooks, cleared with it on backtrack
    owned_slots: Tuple[str, ...] = ()

    def should_skip(self, slots: SlotSnapshot) -> bool:
        if self.skip is None:
            return False
        return bool(self.skip(slots))

    def render_message(self, slots: SlotSnapshot) -> Optional[str]:
        if self.dynamic_message is not None:
            return self.dynamic_message(slots)
        return self.message


@dataclass
class ActivitySummary:
    activity: str = ""
    location: str = ""
    schedule: str = ""
    participants: str = ""
    operator: str = ""
    started: str = ""
    funding: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivitySummary":
        return cls(**{k: str(data.get(k) or "").strip() for k in SUMMARY_FIELDS})

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class TranscriptEntry:
    id: str
    actor: str                    # "ai" | "user"
    text: str
    step: int                     # cursor value when the entry was rendered
    rich: bool = False            # trusted internal markup (summary cards)


@dataclass(frozen=True)
class Suggestion:
    tab: str                      # artifact key
    reviewer_index: int
    reason: str
    before: str
    after: str
    id: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Suggestion":
        try:
            reviewer_index = int(data.get("reviewerIndex", data.get("reviewer_index", 0)) or 0)
        except (TypeError, ValueError):
            reviewer_index = 0
        return cls(
            tab=str(data.get("tab") or ""),
            reviewer_index=reviewer_index,
            reason=str(data.get("reason") or ""),
            before=str(data.get("before") or ""),
            after=str(data.get("after") or ""),
            id=str(data.get("id") or ""),
        )


@dataclass(frozen=True)
class Decision:
    action: str                   # "accept" | "reject" | "alternative"
    text: Optional[str] = None    # replacement for "alternative"


@dataclass(frozen=True)
class ReviewerPersona:
    persona: str
    avatar: str = ""
    role: str = ""
    role_color: str = ""
    comments: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReviewerPersona":
        comments = data.get("comments") or ()
        if isinstance(comments, str):
            comments = (comments,)
        return cls(
            persona=str(data.get("persona") or ""),
            avatar=str(data.get("avatar") or ""),
            role=str(data.get("role") or ""),
            role_color=str(data.get("roleColor", data.get("role_color")) or ""),
            comments=tuple(str(c) for c in comments),
        )


@dataclass
class ServiceResult:
    success: bool
    source: str = SOURCE_LLM      # "llm" | "mock" | "mock-fallback"
    degraded: bool = False
    payload: Any = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source in (SOURCE_MOCK, SOURCE_FALLBACK)


@dataclass(frozen=True)
class RenderIntent:
    """Command for the rendering adapter; the engine never touches a view."""
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
