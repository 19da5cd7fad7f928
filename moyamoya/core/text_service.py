from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import requests

from ..llm.client import LLMClient
from ..llm.context_builder import build_artifact_excerpts, build_slots_context
from ..review.critique import Critic
from .config import use_llm
from .constants import ARTIFACT_KEYS, SOURCE_FALLBACK, SOURCE_LLM, SOURCE_MOCK
from .generator import ArtifactGenerator, placeholder_outputs
from .mock_data import mock_chat_reply
from .summarizer import ActivitySummarizer
from .types import ServiceResult

logger = logging.getLogger(__name__)


class ServiceError(RuntimeError):
    """The text service could not be reached at all (transport failure)."""


class TextService(ABC):
    """
    Boundary to the text-completion backend.
    Every call returns a ServiceResult; ServiceError means "network error".
    """

    @abstractmethod
    async def summarize_url(self, url: str) -> ServiceResult: ...

    @abstractmethod
    async def summarize_text(self, text: str) -> ServiceResult: ...

    @abstractmethod
    async def update_summary(self, summary: Mapping[str, Any], correction: str) -> ServiceResult: ...

    @abstractmethod
    async def generate_artifacts(self, slots: Mapping[str, Any]) -> ServiceResult: ...

    @abstractmethod
    async def expert_review(
        self,
        artifacts: Mapping[str, str],
        section_index: int,
        section_title: str,
        section_text: str,
    ) -> ServiceResult: ...

    @abstractmethod
    async def chat(self, message: str, slots: Mapping[str, Any], excerpts: Mapping[str, str]) -> ServiceResult: ...

    @abstractmethod
    async def audit(self, artifacts: Mapping[str, str]) -> ServiceResult: ...

    @abstractmethod
    async def improve(self, tab: str, content: str, weak_axis: str, comment: str = "") -> ServiceResult: ...


class LocalTextService(TextService):
    """
    In-process implementation on top of LLMClient.
    Blocking model calls run in worker threads so the event loop stays free.
    """

    def __init__(self, llm: Optional[LLMClient] = None):
        self._llm = llm
        self.summarizer = ActivitySummarizer(llm)
        self.generator = ArtifactGenerator(llm)
        self.critic = Critic(llm)

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    # -----------------------------
    # Intake
    # -----------------------------
    async def summarize_url(self, url: str) -> ServiceResult:
        return await asyncio.to_thread(self.summarizer.summarize_url, url)

    async def summarize_text(self, text: str) -> ServiceResult:
        return await asyncio.to_thread(self.summarizer.summarize_text, text)

    async def update_summary(self, summary: Mapping[str, Any], correction: str) -> ServiceResult:
        return await asyncio.to_thread(self.summarizer.update_summary, summary, correction)

    # -----------------------------
    # Generation
    # -----------------------------
    async def generate_artifacts(self, slots: Mapping[str, Any]) -> ServiceResult:
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=placeholder_outputs())

        slots = dict(slots or {})
        try:
            texts = await asyncio.gather(
                *(asyncio.to_thread(self.generator.generate_artifact, k, slots) for k in ARTIFACT_KEYS)
            )
        except (requests.RequestException, RuntimeError) as e:
            # forward progress over strictness: hand back usable content
            logger.warning("generation failed, serving placeholder artifacts: %s", e)
            return ServiceResult(
                success=True,
                source=SOURCE_FALLBACK,
                degraded=True,
                payload=placeholder_outputs(),
                error_code="UPSTREAM_ERROR",
                error_message=str(e) or "generation failed",
            )
        return ServiceResult(success=True, source=SOURCE_LLM, payload=dict(zip(ARTIFACT_KEYS, texts)))

    # -----------------------------
    # Review / audit
    # -----------------------------
    async def expert_review(
        self,
        artifacts: Mapping[str, str],
        section_index: int,
        section_title: str,
        section_text: str,
    ) -> ServiceResult:
        logger.debug("expert review for section %d (%s)", section_index, section_title)
        return await asyncio.to_thread(self.critic.expert_review, dict(artifacts), section_title, section_text)

    async def audit(self, artifacts: Mapping[str, str]) -> ServiceResult:
        return await asyncio.to_thread(self.critic.audit, dict(artifacts))

    async def improve(self, tab: str, content: str, weak_axis: str, comment: str = "") -> ServiceResult:
        return await asyncio.to_thread(self.critic.improve, tab, content, weak_axis, comment)

    # -----------------------------
    # Free chat
    # -----------------------------
    async def chat(self, message: str, slots: Mapping[str, Any], excerpts: Mapping[str, str]) -> ServiceResult:
        message = (message or "").strip()
        if not message:
            return ServiceResult(success=False, error_code="INVALID_INPUT", error_message="message is required")
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=mock_chat_reply(message))

        variables: Dict[str, Any] = {
            "slots_context": build_slots_context(slots),
            "excerpts": build_artifact_excerpts(excerpts, max_chars_each=500, keys=["plan", "funding"]),
            "message": message[:2000],
        }
        try:
            reply = await asyncio.to_thread(self.llm.run_text, "chat.txt", variables, 800)
        except (requests.RequestException, RuntimeError) as e:
            logger.warning("chat failed: %s", e)
            return ServiceResult(success=False, error_code="UPSTREAM_ERROR", error_message="Chat generation failed")
        return ServiceResult(success=True, source=SOURCE_LLM, payload=reply)
