from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, Mapping, Optional

import requests

from ..core.config import use_llm
from ..core.constants import ARTIFACT_KEYS, AUDIT_AXES, SOURCE_FALLBACK, SOURCE_LLM, SOURCE_MOCK
from ..core.mock_data import AXIS_IMPROVE_INSTRUCTIONS, AXIS_LABELS, MOCK_AUDIT, MOCK_EXPERT_REVIEW
from ..core.types import ServiceResult
from ..llm.client import LLMClient
from ..llm.context_builder import build_artifact_excerpts
from ..llm.json_parser import JSONParseError

logger = logging.getLogger(__name__)

_LLM_ERRORS = (requests.RequestException, RuntimeError, JSONParseError)


def _fallback(payload: Any, what: str, e: Exception) -> ServiceResult:
    logger.warning("%s unavailable, serving placeholder: %s", what, e)
    return ServiceResult(
        success=True,
        source=SOURCE_FALLBACK,
        degraded=True,
        payload=payload,
        error_code="UPSTREAM_ERROR",
        error_message=f"{what} unavailable",
    )


def mock_improve(content: str, weak_axis: str) -> str:
    """Placeholder improvement: a banner right under the first `## ` heading."""
    label = AXIS_LABELS.get(weak_axis, weak_axis)
    banner = f"> 🔄 **自動改善済み**：「{label}」を強化しました"
    return re.sub(r"^(## .+)$", lambda m: f"{m.group(1)}\n\n{banner}", content, count=1, flags=re.MULTILINE)


class Critic:
    """Recipient-perspective critique, four-axis audit and single-axis rewrite."""

    def __init__(self, llm: Optional[LLMClient] = None):
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    def expert_review(
        self,
        outputs: Mapping[str, str],
        section_title: str = "",
        section_text: str = "",
    ) -> ServiceResult:
        mock = copy.deepcopy(MOCK_EXPERT_REVIEW)
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=mock)

        variables = {
            "section_title": section_title or "文章パック",
            "section_text": (section_text or "")[:1500],
            "excerpts": build_artifact_excerpts(outputs, max_chars_each=800),
        }
        try:
            data = self.llm.run_json("expert_review.txt", variables, max_output_tokens=2000)
        except _LLM_ERRORS as e:
            return _fallback(mock, "expert review", e)

        reviews = data.get("reviews")
        suggestions = data.get("suggestions")
        if not isinstance(reviews, list) or not isinstance(suggestions, list):
            return _fallback(mock, "expert review", ValueError("unexpected critique shape"))
        return ServiceResult(success=True, source=SOURCE_LLM, payload={"reviews": reviews, "suggestions": suggestions})

    def audit(self, outputs: Mapping[str, str]) -> ServiceResult:
        mock = copy.deepcopy(MOCK_AUDIT)
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=mock)

        variables = {"excerpts": build_artifact_excerpts(outputs, max_chars_each=600)}
        try:
            data = self.llm.run_json("audit.txt", variables, max_output_tokens=1200)
        except _LLM_ERRORS as e:
            return _fallback(mock, "audit", e)

        audit: Dict[str, Any] = {}
        for tab in ARTIFACT_KEYS:
            entry = data.get(tab)
            if not isinstance(entry, dict):
                return _fallback(mock, "audit", ValueError(f"missing audit for {tab}"))
            scores = entry.get("scores") or {}
            comments = entry.get("comments") or {}
            audit[tab] = {
                "scores": {a: str(scores.get(a) or "△") for a in AUDIT_AXES},
                "comments": {a: str(comments.get(a) or "") for a in AUDIT_AXES},
            }
        return ServiceResult(success=True, source=SOURCE_LLM, payload=audit)

    def improve(self, tab: str, content: str, weak_axis: str, comment: str = "") -> ServiceResult:
        if not (content or "").strip():
            return ServiceResult(success=False, error_code="INVALID_INPUT", error_message="content is required")
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=mock_improve(content, weak_axis))

        variables = {
            "instruction": AXIS_IMPROVE_INSTRUCTIONS.get(weak_axis, "品質を向上させてください"),
            "comment": comment or "",
            "content": content,
        }
        try:
            improved = self.llm.run_text("improve.txt", variables, max_output_tokens=2400)
        except (requests.RequestException, RuntimeError) as e:
            logger.warning("improve %s/%s failed: %s", tab, weak_axis, e)
            return ServiceResult(success=False, error_code="UPSTREAM_ERROR", error_message="Improvement failed")
        if not improved.strip():
            return ServiceResult(success=False, error_code="UPSTREAM_ERROR", error_message="Empty improvement")
        return ServiceResult(success=True, source=SOURCE_LLM, payload=improved)
