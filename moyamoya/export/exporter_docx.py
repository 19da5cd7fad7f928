from __future__ import annotations

import os
import re
from typing import Mapping, Optional

from docx import Document
from docx.shared import Pt

from ..core.constants import ARTIFACT_KEYS, ARTIFACT_LABELS
from .exporter_txt import EXPORT_TITLE, FOOTER, generated_line

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_BULLET_RE = re.compile(r"^\s*[-*]\s+(.*)$")
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.*)$")
_RULE_RE = re.compile(r"^\s*(?:-\s*){3,}$")


def _strip_inline(text: str) -> str:
    """Drop the inline markdown python-docx would print literally."""
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"`([^`]*)`", r"\1", text)
    return text.strip()


def _add_markdown(doc: Document, markdown: str) -> None:
    for raw in (markdown or "").splitlines():
        line = raw.rstrip()
        if not line.strip() or _RULE_RE.match(line):
            continue

        m = _HEADING_RE.match(line)
        if m:
            # level 1 is the artifact title
            doc.add_heading(_strip_inline(m.group(2)), level=min(len(m.group(1)) + 1, 4))
            continue

        m = _BULLET_RE.match(line)
        if m:
            doc.add_paragraph(_strip_inline(m.group(1)), style="List Bullet")
            continue

        m = _NUMBERED_RE.match(line)
        if m:
            doc.add_paragraph(_strip_inline(m.group(1)), style="List Number")
            continue

        if line.lstrip().startswith(">"):
            doc.add_paragraph(_strip_inline(line.lstrip()[1:]), style="Intense Quote")
            continue

        doc.add_paragraph(_strip_inline(line))


def export_docx_file(
    out_dir: str,
    session_id: str,
    outputs: Mapping[str, str],
    filename: Optional[str] = None,
    title: str = EXPORT_TITLE,
) -> str:
    os.makedirs(out_dir, exist_ok=True)
    if not filename:
        filename = f"moyamoya_{session_id}.docx"
    path = os.path.join(out_dir, filename)

    doc = Document()
    doc.add_heading(title, level=0)
    doc.add_paragraph(generated_line())

    for i, k in enumerate(ARTIFACT_KEYS):
        if i:
            doc.add_page_break()
        doc.add_heading(ARTIFACT_LABELS[k], level=1)
        text = str(outputs.get(k) or "").strip()
        if text:
            _add_markdown(doc, text)
        else:
            doc.add_paragraph("(empty)")

    doc.add_paragraph("")
    doc.add_paragraph(FOOTER)

    style = doc.styles["Normal"]
    style.font.name = "Meiryo"
    style.font.size = Pt(10.5)

    doc.save(path)
    return path
