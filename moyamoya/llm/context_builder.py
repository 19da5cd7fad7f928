from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..core.constants import ARTIFACT_KEYS, ARTIFACT_LABELS, SLOT_KEYS


SLOT_DESCRIPTIONS: Dict[str, str] = {
    "source_mode": "情報の伝え方（url / sns / none）",
    "activity_summary": "活動の要約",
    "activity_type": "活動タイプ",
    "activity_place": "主な活動場所",
    "activity_frequency": "開催頻度",
    "topic": "いま気になっていること",
    "risk_type": "資金の状況",
    "deadline_window": "手続き・相談のスケジュール",
    "gap_range": "余裕が出る金額感（月額）",
    "allies": "協力者の状況",
    "intent": "これからの方向性",
    "desired_output": "一番ほしい成果物",
}


def _as_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, dict):
        return " / ".join(f"{k}: {_as_text(x)}" for k, x in v.items() if x)
    if isinstance(v, list):
        return ", ".join([str(x) for x in v if x is not None]).strip()
    return str(v).strip()


def _clip(s: str, n: int) -> str:
    s = (s or "").strip()
    if len(s) <= n:
        return s
    return s[:n].rstrip() + "…"


def build_slots_context(
    slots: Mapping[str, Any],
    max_chars: int = 2000,
    *,
    max_chars_per_slot: int = 400,
) -> str:
    """
    Token-safe bullet list of the answered slots, in wizard order.
    Unset slots are left out.
    """
    if not slots:
        return ""

    lines: List[str] = []
    used = 0
    for k in SLOT_KEYS:
        v_str = _as_text(slots.get(k))
        if not v_str:
            continue
        line = f"- {SLOT_DESCRIPTIONS.get(k, k)}（{k}）: {_clip(v_str, max_chars_per_slot)}"
        if used + len(line) + 1 > max_chars:
            break
        lines.append(line)
        used += len(line) + 1

    return "\n".join(lines).strip()


def build_artifact_excerpts(
    outputs: Optional[Mapping[str, str]],
    max_chars_each: int = 800,
    *,
    keys: Optional[List[str]] = None,
) -> str:
    """【label】 + clipped body for each artifact."""
    if not outputs:
        return ""
    blocks: List[str] = []
    for k in keys or ARTIFACT_KEYS:
        body = _clip(outputs.get(k) or "", max_chars_each)
        if not body:
            continue
        blocks.append(f"【{ARTIFACT_LABELS.get(k, k)}】\n{body}")
    return "\n\n".join(blocks)
