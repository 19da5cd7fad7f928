from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional

import requests
from bs4 import BeautifulSoup

from ..llm.client import LLMClient
from ..llm.json_parser import JSONParseError
from .config import page_text_max_chars, url_fetch_timeout_sec, use_llm
from .constants import SOURCE_LLM, SOURCE_MOCK, SUMMARY_FIELDS
from .mock_data import MOCK_SUMMARY
from .types import ServiceResult

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; MoyamoyaCatcher/1.0)"


# -----------------------------
# Page fetch
# -----------------------------
def normalize_url(url: str) -> str:
    url = (url or "").strip()
    if re.match(r"^https?://", url, flags=re.IGNORECASE):
        return url
    return f"https://{url}"


def html_to_text(html: str, max_chars: Optional[int] = None) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = re.sub(r"\s+", " ", soup.get_text(" ")).strip()
    if max_chars is not None:
        text = text[:max_chars]
    return text


def fetch_page_text(url: str) -> str:
    r = requests.get(
        normalize_url(url),
        headers={"User-Agent": USER_AGENT},
        timeout=url_fetch_timeout_sec(),
    )
    r.raise_for_status()
    return html_to_text(r.text, max_chars=page_text_max_chars())


# -----------------------------
# Summaries
# -----------------------------
def _clean_summary(data: Mapping[str, Any]) -> Dict[str, str]:
    return {k: str(data.get(k) or "").strip() for k in SUMMARY_FIELDS}


def _invalid(message: str) -> ServiceResult:
    return ServiceResult(success=False, error_code="INVALID_INPUT", error_message=message)


def _upstream(e: Exception) -> ServiceResult:
    return ServiceResult(success=False, error_code="UPSTREAM_ERROR", error_message=str(e) or type(e).__name__)


class ActivitySummarizer:
    """
    URL / pasted text / correction -> structured activity summary.
    Blocking; LocalTextService runs it in a worker thread.
    """

    def __init__(self, llm: Optional[LLMClient] = None):
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    def summarize_url(self, url: str) -> ServiceResult:
        url = (url or "").strip()
        if not url:
            return _invalid("URL is required")
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=dict(MOCK_SUMMARY))

        try:
            page_text = fetch_page_text(url)
        except requests.RequestException as e:
            # still ask the model; it can infer from the URL alone
            logger.warning("URL fetch failed for %s: %s", url, e)
            page_text = f"（URLの取得に失敗しました: {url}）"

        return self._run("summarize_url.txt", {"url": url, "page_text": page_text})

    def summarize_text(self, text: str) -> ServiceResult:
        text = (text or "").strip()
        if not text:
            return _invalid("text is required")
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=dict(MOCK_SUMMARY))
        return self._run("summarize_text.txt", {"text": text[: page_text_max_chars()]})

    def update_summary(self, summary: Mapping[str, Any], correction: str) -> ServiceResult:
        correction = (correction or "").strip()
        if not correction:
            return _invalid("correction is required")
        current = _clean_summary(summary or {})
        if not use_llm():
            return ServiceResult(success=True, source=SOURCE_MOCK, payload=current)

        variables = {
            "current_summary": json.dumps(current, ensure_ascii=False, indent=2),
            "correction": correction[:2000],
        }
        return self._run("update_summary.txt", variables)

    def _run(self, prompt_name: str, variables: Dict[str, Any]) -> ServiceResult:
        try:
            data = self.llm.run_json(prompt_name, variables, max_output_tokens=600)
        except (requests.RequestException, RuntimeError, JSONParseError) as e:
            logger.warning("%s failed: %s", prompt_name, e)
            return _upstream(e)
        return ServiceResult(success=True, source=SOURCE_LLM, payload=_clean_summary(data))
