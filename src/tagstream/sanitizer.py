"""Strips leaked internal logs and metadata from a raw model buffer.

Runs before quarantine. Patterns are applied in order; each one targets a
specific leak (conversation dumps, agent-loop notices, log markers).
"""

import re
from typing import List, Pattern, Tuple

from .logger import get_logger

log = get_logger("sanitizer")

_REMOVALS: List[Tuple[str, Pattern[str]]] = [
    ("json dump", re.compile(
        r'\{\s*"content":\s*"[\s\S]*?"\s*,\s*"error":\s*(?:null|"[^"]*")\s*,\s*"timestamp":\s*"[^"]*"\s*\}')),
    ("auto-proceed", re.compile(r"\(Proceeding automatically\.?\s*Please continue.*?\)", re.IGNORECASE)),
    ("auto-proceed", re.compile(r"\(Proceeding automatically\.?\)", re.IGNORECASE)),
    ("file dump", re.compile(r"USER QUESTION:\s*File Content:\s*`[^`]+`\s*```[\s\S]*?```")),
    ("command dump", re.compile(r"USER QUESTION:\s*Command executed:[\s\S]*?```[\s\S]*?```")),
    ("listing dump", re.compile(r"USER QUESTION:\s*Directory Listing for[\s\S]*?```[\s\S]*?```")),
    ("active file", re.compile(r"Current Active File:.*?\n")),
    ("stream marker", re.compile(r"\[Main\] Starting stream for model:.*?\n")),
    ("service marker", re.compile(r"\[OpenRouter Service\]:.*?\n")),
    ("renderer marker", re.compile(r"\[Renderer\] LLM RESPONSE:.*?\n")),
    ("elision comment", re.compile(r"//\s*\.\.\.\s*\([^)]*implementation[^)]*\)", re.IGNORECASE)),
    ("step id", re.compile(r"Step Id:\s*\d+\s*\n")),
    ("tool definition", re.compile(r"<tool_definition>[\s\S]*?</tool_definition>")),
    ("start instruction", re.compile(r"^[ \t]*Start working now\.?[^\n]*\n?", re.MULTILINE)),
]

_INTERNAL_MARKERS = [
    re.compile(r'"content":\s*"[\s\S]*?"\s*,\s*"error":'),
    re.compile(r"Step Id:\s*\d+"),
    re.compile(r"\(Proceeding automatically"),
    re.compile(r"USER QUESTION:\s*File Content:"),
    re.compile(r"\[Main\] Starting stream"),
    re.compile(r"Current Active File:"),
]

_EXCESS_NEWLINES_RE = re.compile(r"\n{4,}")


def sanitize(content: str) -> str:
    """Return ``content`` with known leak patterns removed.

    Leading whitespace is trimmed. Trailing newlines are kept: a header on
    the last line is only recognised once its line end has arrived.
    """
    if not content or not isinstance(content, str):
        return content
    cleaned = content
    for label, pattern in _REMOVALS:
        cleaned, n = pattern.subn("", cleaned)
        if n:
            log.debug("sanitizer removed %d %s match(es)", n, label)
    cleaned = _EXCESS_NEWLINES_RE.sub("\n\n\n", cleaned)
    return cleaned.lstrip().rstrip(" \t")


def is_internal_log(content: str) -> bool:
    """True when ``content`` carries two or more internal-log markers."""
    if not content or not isinstance(content, str):
        return False
    return sum(1 for p in _INTERNAL_MARKERS if p.search(content)) >= 2
