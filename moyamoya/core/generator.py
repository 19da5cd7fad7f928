from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..llm.client import LLMClient
from ..llm.context_builder import build_slots_context
from .constants import ARTIFACT_KEYS
from .mock_data import MOCK_OUTPUTS, PROFILE_RETRY_NOTICE


# Artifact -> prompt file and token limit
ARTIFACT_PROMPTS: Dict[str, str] = {
    "profile": "generate_profile.txt",
    "plan": "generate_plan.txt",
    "funding": "generate_funding.txt",
    "messages": "generate_messages.txt",
}

ARTIFACT_MAX_TOKENS: Dict[str, int] = {
    "profile": 2000,
    "plan": 1800,
    "funding": 1800,
    "messages": 2400,
}


def placeholder_outputs() -> Dict[str, str]:
    """Deterministic artifact set used when the model is off or failed."""
    return {k: MOCK_OUTPUTS[k] for k in ARTIFACT_KEYS}


class ArtifactGenerator:
    def __init__(self, llm: Optional[LLMClient] = None):
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    def generate_artifact(self, name: str, slots: Mapping[str, Any]) -> str:
        if name not in ARTIFACT_PROMPTS:
            raise KeyError(f"Unknown artifact: {name}")

        variables = {"slots_context": build_slots_context(slots)}
        text = self.llm.run_text(
            ARTIFACT_PROMPTS[name],
            variables,
            max_output_tokens=ARTIFACT_MAX_TOKENS[name],
        )
        if name == "profile" and not text.strip():
            return PROFILE_RETRY_NOTICE
        return text
