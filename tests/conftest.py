from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from moyamoya.core.constants import SOURCE_LLM
from moyamoya.core.flow import Conversation
from moyamoya.core.generator import placeholder_outputs
from moyamoya.core.mock_data import MOCK_AUDIT, MOCK_EXPERT_REVIEW, MOCK_SUMMARY
from moyamoya.core.text_service import TextService
from moyamoya.core.types import ServiceResult

# value sequence that walks the manual (no URL) path up to the generate step
MANUAL_PATH = (
    "none", "kodomo", "kominkan", "weekly", "ok",
    "money", "next_year_uncertain", "2-3w", "3万",
    "none", "continue", "C",
)


class FakeTextService(TextService):
    """
    Scriptable service. `results[name]` may be a ServiceResult or an
    exception instance to raise; unset names get a successful default.
    `gate`, when set, holds generate_artifacts until the event fires.
    """

    def __init__(self) -> None:
        self.results: Dict[str, Any] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.gate: Optional[asyncio.Event] = None

    def _scripted(self, name: str, args: tuple) -> Optional[ServiceResult]:
        self.calls.append((name, args))
        r = self.results.get(name)
        if isinstance(r, BaseException):
            raise r
        return r

    def called(self, name: str) -> List[tuple]:
        return [args for n, args in self.calls if n == name]

    async def summarize_url(self, url):
        return self._scripted("summarize_url", (url,)) or ServiceResult(
            success=True, source=SOURCE_LLM, payload=dict(MOCK_SUMMARY)
        )

    async def summarize_text(self, text):
        return self._scripted("summarize_text", (text,)) or ServiceResult(
            success=True, source=SOURCE_LLM, payload=dict(MOCK_SUMMARY)
        )

    async def update_summary(self, summary, correction):
        updated = dict(summary)
        updated["location"] = "福井県鯖江市"
        return self._scripted("update_summary", (summary, correction)) or ServiceResult(
            success=True, source=SOURCE_LLM, payload=updated
        )

    async def generate_artifacts(self, slots):
        r = self._scripted("generate_artifacts", (slots,))
        if self.gate is not None:
            await self.gate.wait()
        return r or ServiceResult(success=True, source=SOURCE_LLM, payload=placeholder_outputs())

    async def expert_review(self, artifacts, section_index, section_title, section_text):
        return self._scripted(
            "expert_review", (artifacts, section_index, section_title, section_text)
        ) or ServiceResult(success=True, source=SOURCE_LLM, payload=copy.deepcopy(MOCK_EXPERT_REVIEW))

    async def chat(self, message, slots, excerpts):
        return self._scripted("chat", (message, slots, excerpts)) or ServiceResult(
            success=True, source=SOURCE_LLM, payload=f"reply: {message}"
        )

    async def audit(self, artifacts):
        return self._scripted("audit", (artifacts,)) or ServiceResult(
            success=True, source=SOURCE_LLM, payload=copy.deepcopy(MOCK_AUDIT)
        )

    async def improve(self, tab, content, weak_axis, comment=""):
        return self._scripted("improve", (tab, content, weak_axis, comment)) or ServiceResult(
            success=True, source=SOURCE_LLM, payload=content + "\n\n（改善済み）"
        )


@pytest.fixture
def fake_service() -> FakeTextService:
    return FakeTextService()


@pytest.fixture
def convo(fake_service) -> Conversation:
    return Conversation(
        fake_service,
        thinking_delay=(0.0, 0.0),
        choices_delay=0.0,
        cancel_grace_sec=60.0,
    )


@pytest.fixture(autouse=True)
def _no_llm(monkeypatch):
    monkeypatch.setenv("USE_LLM", "0")


async def walk(convo: Conversation, *values: str) -> None:
    for v in values:
        await convo.select(v)


def ai_texts(convo: Conversation) -> List[str]:
    return [e.text for e in convo.state.transcript if e.actor == "ai"]


def all_texts(convo: Conversation) -> List[Tuple[str, str]]:
    return [(e.actor, e.text) for e in convo.state.transcript]
