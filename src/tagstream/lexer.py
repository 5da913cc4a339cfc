"""Tokenizer for quarantined text.

After the quarantine layer only allow-listed directive tags contain a
literal ``<``, so the lexer just has to split the text into a flat token
stream: text runs, open tags (with parsed attributes), close tags,
self-closing tags and, at the very end, a tag cut off mid-stream.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Dict, Iterable, List, Pattern, Tuple

from .quarantine import unescape_html


class TokenType(str, Enum):
    TEXT = "text"
    OPEN = "open"
    CLOSE = "close"
    SELF_CLOSING = "self_closing"
    TRUNCATED = "truncated"


@dataclass
class Token:
    type: TokenType
    raw: str
    start: int
    end: int
    name: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)

    @property
    def is_tag(self) -> bool:
        return self.type in (TokenType.OPEN, TokenType.CLOSE, TokenType.SELF_CLOSING)


_ATTR_RE = re.compile(
    r'([a-zA-Z_][a-zA-Z0-9_-]*)\s*=\s*(?:"([^"]*)"|\'([^\']*)\'|([^\s"\'=<>`]+))',
    re.DOTALL,
)
_TRUNCATED_RE = re.compile(r"<(/?)([A-Za-z_][\w-]*)?([^<>]*)\Z")


def parse_attributes(blob: str) -> Dict[str, str]:
    """Parse ``key="value"`` pairs; values come back unescaped."""
    attrs: Dict[str, str] = {}
    for m in _ATTR_RE.finditer(blob or ""):
        key = m.group(1).lower()
        value = m.group(2)
        if value is None:
            value = m.group(3)
        if value is None:
            value = m.group(4) or ""
        attrs.setdefault(key, unescape_html(value))
    return attrs


@lru_cache(maxsize=32)
def _tag_pattern(names: Tuple[str, ...]) -> Pattern[str]:
    alt = "|".join(re.escape(n) for n in sorted(names, key=len, reverse=True))
    return re.compile(
        r"<(/?)(" + alt + r")(?=[\s/>])((?:[^<>\"']|\"[^\"]*\"|'[^']*')*)>",
        re.IGNORECASE,
    )


def tokenize(text: str, names: Iterable[str]) -> List[Token]:
    """Split quarantined ``text`` into tokens for the given tag names."""
    pattern = _tag_pattern(tuple(sorted({n.lower() for n in names})))
    tokens: List[Token] = []
    pos = 0

    for m in pattern.finditer(text):
        if m.start() > pos:
            tokens.append(Token(TokenType.TEXT, text[pos:m.start()], pos, m.start()))
        closing, name, blob = m.group(1), m.group(2).lower(), m.group(3)
        if closing:
            tokens.append(Token(TokenType.CLOSE, m.group(0), m.start(), m.end(), name=name))
        else:
            blob = blob.rstrip()
            kind = TokenType.OPEN
            if blob.endswith("/"):
                kind = TokenType.SELF_CLOSING
                blob = blob[:-1]
            tokens.append(Token(kind, m.group(0), m.start(), m.end(), name=name,
                                attrs=parse_attributes(blob)))
        pos = m.end()

    rest = text[pos:]
    if rest:
        tail = _TRUNCATED_RE.search(rest)
        if tail:
            if tail.start() > 0:
                tokens.append(Token(TokenType.TEXT, rest[:tail.start()], pos, pos + tail.start()))
            tokens.append(Token(TokenType.TRUNCATED, tail.group(0), pos + tail.start(), len(text),
                                name=(tail.group(2) or "").lower()))
        else:
            tokens.append(Token(TokenType.TEXT, rest, pos, len(text)))
    return tokens
