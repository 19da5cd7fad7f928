from __future__ import annotations

import os
from typing import Tuple


def env_bool(key: str, default: str = "0") -> bool:
    """
    Env bool parser.
    Accepts: 1/0, true/false, yes/no (case-insensitive)
    """
    v = os.getenv(key, default)
    if v is None:
        v = default
    return str(v).strip().lower() in ("1", "true", "yes", "y")


def env_str(key: str, default: str = "") -> str:
    v = os.getenv(key, default)
    if v is None:
        v = default
    return str(v).strip()


def env_float(key: str, default: float) -> float:
    raw = env_str(key, "")
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def env_int(key: str, default: int) -> int:
    return int(env_float(key, default))


# -------------------------------------------------
# Runtime getters (read on every call so env changes
# and Streamlit reloads are picked up)
# -------------------------------------------------
def use_llm() -> bool:
    return env_bool("USE_LLM", "0")


def thinking_delay_range() -> Tuple[float, float]:
    low = max(0.0, env_float("THINKING_DELAY_MIN_SEC", 0.6))
    high = max(low, env_float("THINKING_DELAY_MAX_SEC", 1.0))
    return low, high


def choices_delay() -> float:
    return max(0.0, env_float("CHOICES_DELAY_SEC", 0.2))


def generation_cancel_grace_sec() -> float:
    return max(0.0, env_float("GENERATION_CANCEL_GRACE_SEC", 20.0))


def url_fetch_timeout_sec() -> float:
    return env_float("URL_FETCH_TIMEOUT_SEC", 10.0)


def page_text_max_chars() -> int:
    return env_int("PAGE_TEXT_MAX_CHARS", 5000)


DATA_DIR = env_str("DATA_DIR", "data")
SESSIONS_DIR = os.path.join(DATA_DIR, "sessions")
EXPORTS_DIR = os.path.join(DATA_DIR, "exports")
