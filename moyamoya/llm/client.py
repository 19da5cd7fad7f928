from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..core.config import env_bool, env_float, env_str
from .json_parser import parse_json_strict

logger = logging.getLogger(__name__)

PROMPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prompts")

SYSTEM_MESSAGE = (
    "You support small community organisations in Japan. "
    "Follow the prompt rules strictly and answer in Japanese. Return only the requested output."
)


@dataclass
class LLMSettings:
    """
    Gateway settings, read from the environment.

    Supported gateway patterns:
      - LLM_MODE=openai : OpenAI-compatible chat completions (/v1/chat/completions)
      - LLM_MODE=custom : LLM_ENDPOINT taking {"prompt": ...}
    Either may additionally want payload["metadata"] = {"username": ..., "pwd": ...}.
    """
    mode: str = "openai"
    timeout_sec: float = 30.0
    temperature: float = 0.4
    verify_ssl: bool = True

    base_url: str = ""
    api_key: str = ""
    model: str = ""
    token_field: str = "max_tokens"

    endpoint: str = ""
    header_name: str = "Authorization"
    header_value: str = ""

    md_username: str = ""
    md_password: str = ""

    @classmethod
    def from_env(cls) -> "LLMSettings":
        return cls(
            mode=env_str("LLM_MODE", "openai").lower() or "openai",
            timeout_sec=env_float("LLM_TIMEOUT_SEC", 30.0),
            temperature=env_float("LLM_TEMPERATURE", 0.4),
            verify_ssl=env_bool("LLM_VERIFY_SSL", "1"),
            base_url=env_str("LLM_BASE_URL", "").rstrip("/"),
            api_key=env_str("LLM_API_KEY", ""),
            model=env_str("LLM_MODEL", ""),
            token_field=env_str("LLM_OPENAI_TOKEN_FIELD", "max_tokens") or "max_tokens",
            endpoint=env_str("LLM_ENDPOINT", ""),
            header_name=env_str("LLM_HEADER_NAME", "Authorization") or "Authorization",
            header_value=env_str("LLM_HEADER_VALUE", ""),
            md_username=env_str("LLM_METADATA_USERNAME", ""),
            md_password=env_str("LLM_METADATA_PASSWORD", ""),
        )


class LLMClient:
    """
    Single entry point for text-completion calls.

    Callers decide whether the model is used at all (USE_LLM); this class
    always talks to the gateway. HTTP/config problems raise RuntimeError or
    requests exceptions and are turned into placeholder content upstream.
    """

    def __init__(self, settings: Optional[LLMSettings] = None, prompts_dir: str = PROMPTS_DIR):
        self.settings = settings or LLMSettings.from_env()
        self.prompts_dir = prompts_dir
        self._prompt_cache: Dict[str, str] = {}

    # -------------------------
    # Prompts
    # -------------------------
    def _load_prompt(self, name: str) -> str:
        if name not in self._prompt_cache:
            path = os.path.join(self.prompts_dir, name)
            with open(path, "r", encoding="utf-8") as f:
                self._prompt_cache[name] = f.read()
        return self._prompt_cache[name]

    def render_prompt(self, prompt_name: str, variables: Dict[str, Any]) -> str:
        return self._load_prompt(prompt_name).format(**variables)

    # -------------------------
    # Public API
    # -------------------------
    def run_text(
        self,
        prompt_name: str,
        variables: Dict[str, Any],
        max_output_tokens: int = 2000,
    ) -> str:
        prompt = self.render_prompt(prompt_name, variables)
        return self._call_model(prompt, max_output_tokens=max_output_tokens).strip()

    def run_json(
        self,
        prompt_name: str,
        variables: Dict[str, Any],
        max_output_tokens: int = 1200,
    ) -> Dict[str, Any]:
        """Raises JSONParseError when the output cannot be repaired into an object."""
        raw = self.run_text(prompt_name, variables, max_output_tokens=max_output_tokens)
        return parse_json_strict(raw)

    # -------------------------
    # Transport
    # -------------------------
    def _call_model(self, prompt: str, max_output_tokens: int) -> str:
        if self.settings.mode == "custom":
            return self._call_custom(prompt, max_output_tokens)
        return self._call_openai_compatible(prompt, max_output_tokens)

    def _build_metadata(self) -> Optional[Dict[str, str]]:
        u = self.settings.md_username.strip()
        p = self.settings.md_password.strip()
        if not u or not p:
            return None
        return {"username": u, "pwd": p}

    def _resolve_openai_url(self) -> str:
        """
        LLM_BASE_URL may be the host, a versioned root, .../v1 or the full
        .../v1/chat/completions; always returns the completions URL.
        """
        base = self.settings.base_url.rstrip("/")
        if not base:
            return ""
        if base.endswith("/v1/chat/completions"):
            return base
        if base.endswith("/v1"):
            return base + "/chat/completions"
        return base + "/v1/chat/completions"

    def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str], label: str) -> Any:
        md = self._build_metadata()
        if md:
            payload["metadata"] = md

        logger.debug("%s request -> %s", label, url)
        r = requests.post(
            url,
            json=payload,
            headers=headers,
            timeout=self.settings.timeout_sec,
            verify=self.settings.verify_ssl,
        )
        if not r.ok:
            raise RuntimeError(f"{label} HTTP {r.status_code}: {r.text[:500]}")

        try:
            return r.json()
        except ValueError:
            return r.text

    def _call_custom(self, prompt: str, max_output_tokens: int) -> str:
        s = self.settings
        if not s.endpoint:
            raise RuntimeError("LLM_ENDPOINT is required when LLM_MODE=custom")

        headers = {"Content-Type": "application/json"}
        if s.header_value:
            headers[s.header_name] = s.header_value

        payload: Dict[str, Any] = {
            "prompt": prompt,
            "model": s.model or None,
            "max_output_tokens": int(max_output_tokens),
            "temperature": float(s.temperature),
        }
        return extract_completion_text(self._post(s.endpoint, payload, headers, "Custom LLM"))

    def _call_openai_compatible(self, prompt: str, max_output_tokens: int) -> str:
        s = self.settings
        for key, value in (("LLM_BASE_URL", s.base_url), ("LLM_API_KEY", s.api_key), ("LLM_MODEL", s.model)):
            if not value:
                raise RuntimeError(f"{key} is required when LLM_MODE=openai")

        headers = {
            "Authorization": f"Bearer {s.api_key}",
            "Content-Type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": s.model,
            "messages": [
                {"role": "system", "content": SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            "temperature": float(s.temperature),
            # gateways disagree on the name (max_tokens / max_output_tokens)
            s.token_field: int(max_output_tokens),
        }
        return extract_completion_text(
            self._post(self._resolve_openai_url(), payload, headers, "OpenAI-compatible")
        )


def extract_completion_text(data: Any) -> str:
    """
    Pull the generated text out of the common response shapes:
    {"text"}, {"output"}, {"choices":[{"message":{"content"}}]}, {"choices":[{"text"}]}.
    Anything else is returned as its string form.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in ("text", "output"):
            if isinstance(data.get(key), str):
                return data[key]
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            first = choices[0]
            msg = first.get("message")
            if isinstance(msg, dict) and isinstance(msg.get("content"), str):
                return msg["content"]
            if isinstance(first.get("text"), str):
                return first["text"]
    return str(data)
