from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

_RULE_RE = re.compile(r"^[ \t]*(?:-[ \t]*){3,}$", flags=re.MULTILINE)
_H3_RE = re.compile(r"^###[ \t]+(.+?)[ \t]*$", flags=re.MULTILINE)


@dataclass(frozen=True)
class Section:
    index: int
    title: str
    body: str      # markdown without the heading
    text: str      # plain text sent to the critique


def to_plain_text(markdown: str) -> str:
    lines = []
    for line in (markdown or "").splitlines():
        line = re.sub(r"^\s*>\s?", "", line)
        line = re.sub(r"^\s*#{1,6}\s+", "", line)
        line = re.sub(r"^\s*[-*]\s+", "・", line)
        line = line.replace("**", "").replace("__", "")
        lines.append(line.rstrip())
    text = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def split_sections(markdown: str) -> List[Section]:
    """
    Split the messages artifact on horizontal rules; every chunk that carries
    a `### ` heading becomes one reviewable section, numbered in order.
    """
    sections: List[Section] = []
    for chunk in _RULE_RE.split(markdown or ""):
        m = _H3_RE.search(chunk)
        if not m:
            continue
        body = (chunk[: m.start()] + chunk[m.end():]).strip()
        sections.append(
            Section(index=len(sections), title=m.group(1).strip(), body=body, text=to_plain_text(body))
        )
    return sections


def get_section(markdown: str, index: int) -> Optional[Section]:
    sections = split_sections(markdown)
    if 0 <= index < len(sections):
        return sections[index]
    return None
