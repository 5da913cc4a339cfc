"""Quarantine layer: escape the raw buffer, then re-open directive tags.

Everything the model emits is escaped first so narrative text can never be
reinterpreted as markup. Afterwards only the allow-listed directive tags
(and the quote entities inside their attribute lists) are turned back into
literal ``<name attr="value">`` syntax for the extractor.

Both escaping levels are recognised when re-opening a tag: ``&lt;tool`` from
our own escape pass and ``&amp;lt;tool`` from an upstream pass that had
already escaped the buffer once.
"""

import re
from typing import Iterable, Pattern

_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#039;"),
)

_LT = r"&(?:amp;)?lt;"
_GT = r"&(?:amp;)?gt;"
_QUOTE_ENTITY_RE = re.compile(r"&(?:amp;)?(?:quot|#0*34);")
_APOS_ENTITY_RE = re.compile(r"&(?:amp;)?(?:apos|#0*39);")


def escape_html(text: str) -> str:
    """Escape the five HTML-significant characters."""
    if not text:
        return ""
    for char, entity in _ESCAPES:
        text = text.replace(char, entity)
    return text


def unescape_html(text: str) -> str:
    """Exact inverse of :func:`escape_html` (``&amp;`` is restored last)."""
    if not text:
        return ""
    for char, entity in reversed(_ESCAPES):
        text = text.replace(entity, char)
    return text


def restore_quotes(attrs: str) -> str:
    """Turn entity-encoded quotes in an attribute list back into quotes."""
    attrs = _QUOTE_ENTITY_RE.sub('"', attrs)
    attrs = _APOS_ENTITY_RE.sub("'", attrs)
    return attrs.replace('\\"', '"')


def _names_alternation(names: Iterable[str]) -> str:
    # Longest first so "thinking" is tried before "think"
    ordered = sorted({n.lower() for n in names}, key=len, reverse=True)
    return "|".join(re.escape(n) for n in ordered)


def build_tag_pattern(names: Iterable[str]) -> Pattern[str]:
    """Pattern for an escaped, complete open/close tag of an allow-listed name."""
    alt = _names_alternation(names)
    return re.compile(
        _LT + r"(/?)(" + alt + r")(?=\s|/|" + _GT + r")"
        r"((?:(?!" + _LT + r"|" + _GT + r").)*?)" + _GT,
        re.IGNORECASE | re.DOTALL,
    )


def build_truncated_pattern() -> Pattern[str]:
    """Pattern for a tag that was cut off by the end of the buffer."""
    return re.compile(
        _LT + r"(/?)([A-Za-z_][\w-]*)?((?:(?!" + _LT + r"|" + _GT + r").)*)\Z",
        re.DOTALL,
    )


_TRUNCATED_RE = build_truncated_pattern()


def _could_become_tag(name: str, rest: str, names: Iterable[str]) -> bool:
    lowered = name.lower()
    known = {n.lower() for n in names}
    if not lowered:
        return not rest
    if lowered in known:
        return not rest or rest[0].isspace() or rest[0] == "/"
    if rest:
        return False
    return any(k.startswith(lowered) for k in known)


def normalize_tags(safe_text: str, names: Iterable[str]) -> str:
    """Re-open allow-listed tags inside already-escaped text.

    A tag cut off at the very end of the buffer (``&lt;tool name=&quot;cre``)
    is re-opened too, so the lexer can recognise it as truncated instead of
    showing it as narrative.
    """
    names = list(names)
    pattern = build_tag_pattern(names)

    def _reopen(m: re.Match) -> str:
        slash, name, attrs = m.group(1), m.group(2), m.group(3)
        return f"<{slash}{name.lower()}{restore_quotes(attrs)}>"

    text = pattern.sub(_reopen, safe_text)

    tail = _TRUNCATED_RE.search(text)
    if tail and _could_become_tag(tail.group(2) or "", tail.group(3), names):
        name = (tail.group(2) or "").lower()
        text = text[:tail.start()] + f"<{tail.group(1)}{name}{restore_quotes(tail.group(3))}"
    return text


def quarantine(raw: str, names: Iterable[str]) -> str:
    """Escape ``raw`` and re-open the allow-listed directive tags."""
    return normalize_tags(escape_html(raw), names)
