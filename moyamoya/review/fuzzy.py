from __future__ import annotations

import re
from typing import Tuple


def _whitespace_run_pattern(before: str) -> str:
    # every run of whitespace in `before` matches any run in the source
    return r"\s+".join(re.escape(part) for part in re.split(r"\s+", before.strip()))


def _whitespace_blind_pattern(before: str) -> str:
    # tolerate whitespace/newlines inserted anywhere (e.g. a wrapped line)
    return r"\s*".join(re.escape(ch) for ch in before if not ch.isspace())


def replace_once_flexible(source: str, before: str, after: str) -> Tuple[bool, str]:
    """
    Replace the first occurrence of `before` in `source` with `after`.

    Matching order:
      1) verbatim
      2) whitespace runs in `before` match any whitespace run
      3) whitespace ignored entirely (source may carry extra breaks)

    Returns (changed, text). A miss returns the source untouched.
    `after` is inserted literally (no backreference expansion).
    """
    if not source or not before:
        return False, source or ""

    if before in source:
        return True, source.replace(before, after, 1)

    if not before.strip():
        return False, source

    for pattern in (_whitespace_run_pattern(before), _whitespace_blind_pattern(before)):
        m = re.search(pattern, source)
        if m:
            return True, source[: m.start()] + after + source[m.end():]

    return False, source
