from __future__ import annotations

import os
from datetime import date
from typing import Mapping, Optional

from ..core.constants import ARTIFACT_KEYS, ARTIFACT_LABELS

EXPORT_TITLE = "🎯 モヤモヤキャッチャー — 生成結果"
DISCLAIMER = "この出力は提案のたたき台です。最終判断は利用者が行ってください。"
FOOTER = "Moyamoya Catcher — 個人情報は含まれていません"


def generated_line(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"生成日：{today.year}/{today.month}/{today.day} ／ {DISCLAIMER}"


def render_txt(outputs: Mapping[str, str], today: Optional[date] = None) -> str:
    lines = []
    lines.append(EXPORT_TITLE)
    lines.append(generated_line(today))
    lines.append("=" * 28)
    lines.append("")

    for k in ARTIFACT_KEYS:
        lines.append(f"【{ARTIFACT_LABELS[k]}】")
        text = str(outputs.get(k) or "").strip()
        lines.append(text if text else "(empty)")
        lines.append("")
        lines.append("-" * 28)
        lines.append("")

    lines.append(FOOTER)
    return "\n".join(lines)


def export_txt_file(
    out_dir: str,
    session_id: str,
    outputs: Mapping[str, str],
    filename: Optional[str] = None,
) -> str:
    os.makedirs(out_dir, exist_ok=True)
    if not filename:
        filename = f"moyamoya_{session_id}.txt"
    path = os.path.join(out_dir, filename)

    content = render_txt(outputs)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)

    return path
