from __future__ import annotations

import json
import os
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional

from .artifacts import ArtifactSet
from .constants import SLOT_DOMAINS, SLOT_KEYS, SOURCE_LLM
from .transcript import Transcript
from .types import ActivitySummary, Choice, SlotSnapshot, TranscriptEntry


class SlotValueError(ValueError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def create_default_slots() -> Dict[str, Any]:
    return {k: None for k in SLOT_KEYS}


class SlotStore:
    """
    Flat mapping of collected facts. A slot is None (unset) or a value from
    its domain; unconstrained slots (summary record) and free-text answers
    bypass the domain check.
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values = create_default_slots()
        for k, v in (values or {}).items():
            if k in self._values:
                self._values[k] = v

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any, *, free_text: bool = False) -> None:
        if key not in self._values:
            raise KeyError(f"Unknown slot: {key}")
        domain = SLOT_DOMAINS.get(key)
        if value is not None and domain is not None and not free_text and value not in domain:
            raise SlotValueError(f"{value!r} is not allowed for slot {key!r}")
        self._values[key] = value

    def clear(self, keys: Iterable[str]) -> None:
        for k in keys:
            if k in self._values:
                self._values[k] = None

    def snapshot(self) -> SlotSnapshot:
        return MappingProxyType(dict(self._values))

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly copy (summary record flattened to a dict)."""
        out: Dict[str, Any] = {}
        for k, v in self._values.items():
            out[k] = v.to_dict() if isinstance(v, ActivitySummary) else v
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlotStore":
        values = dict(data or {})
        summary = values.get("activity_summary")
        if isinstance(summary, dict):
            values["activity_summary"] = ActivitySummary.from_dict(summary)
        return cls(values)


@dataclass
class SessionState:
    """
    Everything the wizard owns for one visitor.
    Transient handlers (free input, generation task) live on the engine,
    not here, so this stays serializable.
    """
    session_id: str
    created_at: str
    cursor: int = -1
    slots: SlotStore = field(default_factory=SlotStore)
    transcript: Transcript = field(default_factory=Transcript)
    visible_choices: List[Choice] = field(default_factory=list)

    # Generation output
    artifacts: Optional[ArtifactSet] = None
    source: str = SOURCE_LLM
    is_mock: bool = False

    # Messages sections already reviewed
    reviewed_sections: List[int] = field(default_factory=list)


def session_path(session_id: str, data_dir: str = "data/sessions") -> str:
    return os.path.join(data_dir, f"{session_id}.json")


def create_session_state() -> SessionState:
    return SessionState(session_id=str(uuid.uuid4()), created_at=_now_iso())


def save_session(state: SessionState, data_dir: str = "data/sessions") -> str:
    _ensure_dir(data_dir)
    path = session_path(state.session_id, data_dir=data_dir)
    data = {
        "session_id": state.session_id,
        "created_at": state.created_at,
        "cursor": state.cursor,
        "slots": state.slots.to_dict(),
        "transcript": [asdict(e) for e in state.transcript],
        "visible_choices": [asdict(c) for c in state.visible_choices],
        "artifacts": state.artifacts.to_dict() if state.artifacts is not None else None,
        "source": state.source,
        "is_mock": state.is_mock,
        "reviewed_sections": list(state.reviewed_sections),
    }

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2, default=str)

    return path


def load_session(session_id: str, data_dir: str = "data/sessions") -> SessionState:
    """
    Loads a session JSON and rehydrates dataclasses.
    Missing keys (older files) fall back to defaults.
    """
    path = session_path(session_id, data_dir=data_dir)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Session not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    entries = [TranscriptEntry(**e) for e in data.get("transcript") or [] if isinstance(e, dict)]
    choices = [Choice(**c) for c in data.get("visible_choices") or [] if isinstance(c, dict)]
    artifacts = data.get("artifacts")

    return SessionState(
        session_id=data["session_id"],
        created_at=data["created_at"],
        cursor=int(data.get("cursor", -1)),
        slots=SlotStore.from_dict(data.get("slots") or {}),
        transcript=Transcript(entries),
        visible_choices=choices,
        artifacts=ArtifactSet(artifacts) if isinstance(artifacts, dict) else None,
        source=str(data.get("source") or SOURCE_LLM),
        is_mock=bool(data.get("is_mock", False)),
        reviewed_sections=[int(i) for i in data.get("reviewed_sections") or []],
    )
