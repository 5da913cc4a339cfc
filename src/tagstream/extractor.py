"""Tag extractor: quarantined text -> ordered blocks + placeholder table.

The buffer is re-parsed from scratch on every growth event. Extraction
walks the lexer's token stream once, left to right:

1. Reasoning tags claim everything up to their close tag, or to the end of
   the buffer when the close has not arrived yet.
2. Directive and tool tags are matched against the first close tag of the
   same spelling. A body that itself contains a complete directive means
   the outer tag is not a directive opener, so a block that was complete in
   a shorter buffer is never swallowed by a longer one.
3. Unclosed tool tags stay text during the walk. Afterwards the first valid
   one that follows the last complete block becomes the single trailing
   in-progress block.
4. Text patterns (command echoes) and section headers are picked out of
   whatever text is left between placeholders.

Rejected directives (missing attributes, empty bodies) are left in place
as literal text. Trailing text that may still become a block is withheld
until the buffer grows (see ``Extractor.extract``), so raw markup never
shows up as narrative for a while and then turns into something else.
"""

import bisect
import re
from typing import Callable, Dict, List, Optional, Tuple

from .logger import get_logger, truncate
from .lexer import Token, TokenType, tokenize
from .models import Block, BlockKind, ExtractionResult, ParseContext
from .quarantine import unescape_html
from .registry import (
    GENERIC_TAG,
    REASONING_TAGS,
    SECTION_TAG,
    BlockRegistry,
    ToolSchema,
    default_registry,
)

log = get_logger("extractor")

_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_COMMAND_RESULT_RE = re.compile(
    r"\[System\] Command Execution Result:\nCommand: (.*?)\nExit Code: (-?\d+)\n\nOutput:\n```\n([\s\S]*?)\n```"
)
_SECTION_RE = re.compile(
    r"<h2\b[^>]*>(?P<h2>[\s\S]*?)</h2>"
    r"|^[ \t]*(?:#{1,6}[ \t]+)?(?P<phase>(?:\*\*|__)?[ \t]*PHASE[ \t]+\d+:[^\n]*?)[ \t]*\n"
    r"|^[ \t]*##[ \t]+(?P<md>[^\n]+?)[ \t]*#*[ \t]*\n",
    re.MULTILINE,
)
_INNER_TAG_RE = re.compile(r"<[^>]+>")
_EMPTY_BODY = "empty body"
_TODO_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+(?:\[([ xX~-])\]\s*)?(.+?)\s*$")
_COMMAND_MARKER = "[System] Command Execution Result:"
_PHASE_PREFIX = r"(?:\*\*?|__?)?[ \t]*(?:P(?:H(?:A(?:S(?:E(?:[ \t]+(?:\d+(?::[^\n]*)?)?)?)?)?)?)?)?"
# A last line that is not finished yet but may still turn into a section header
_PENDING_LINE_RE = re.compile(
    r"[ \t]*(?:##(?:[ \t][^\n]*)?"
    r"|#{1,6}(?:[ \t]+" + _PHASE_PREFIX + r")?"
    r"|<h2\b[^\n]*"
    r"|" + _PHASE_PREFIX + r")"
)


def clean_reasoning(content: str) -> str:
    """Drop fenced code and per-line indentation from reasoning text."""
    content = _CODE_FENCE_RE.sub("", content).replace("```", "")
    return "\n".join(line.strip() for line in content.split("\n")).strip()


def parse_todo_items(content: str) -> List[Dict[str, object]]:
    """Checklist items from a plan update (``- [x] done``, ``- todo``)."""
    items = []
    for line in content.splitlines():
        m = _TODO_ITEM_RE.match(line)
        if m:
            items.append({"title": m.group(2), "done": (m.group(1) or "").lower() == "x"})
    return items


class _Closes:
    """Index of close-tag token positions per tag name."""

    def __init__(self, tokens: List[Token]):
        self._by_name: Dict[str, List[int]] = {}
        for i, tok in enumerate(tokens):
            if tok.type == TokenType.CLOSE:
                self._by_name.setdefault(tok.name, []).append(i)

    def next(self, names, after: int, before: Optional[int] = None) -> Optional[int]:
        best = None
        for name in names:
            positions = self._by_name.get(name, [])
            k = bisect.bisect_right(positions, after)
            if k < len(positions) and (before is None or positions[k] < before):
                if best is None or positions[k] < best:
                    best = positions[k]
        return best


class Extractor:
    """Turns quarantined text into blocks; one instance per registry."""

    def __init__(self, registry: Optional[BlockRegistry] = None):
        self.registry = registry or default_registry()

    @property
    def tag_names(self) -> List[str]:
        return self.registry.tag_names()

    # ── Tag classification ──

    def _close_names(self, tok: Token) -> Tuple[str, ...]:
        if tok.name in REASONING_TAGS:
            return REASONING_TAGS
        return (tok.name,)

    def _is_directive_tag(self, tok: Token) -> bool:
        return (tok.name == GENERIC_TAG or tok.name in REASONING_TAGS
                or self.registry.schema_for_tag(tok.name) is not None
                or self.registry.directive_for_tag(tok.name) is not None)

    def _completes_on_open(self, tok: Token) -> bool:
        if tok.type == TokenType.SELF_CLOSING:
            return True
        schema = self.registry.schema_for_tag(tok.name)
        return tok.name != GENERIC_TAG and schema is not None and schema.void

    def _has_nested_complete(self, tokens: List[Token], closes: _Closes, i: int, j: int) -> bool:
        for k in range(i + 1, j):
            tok = tokens[k]
            if tok.type not in (TokenType.OPEN, TokenType.SELF_CLOSING):
                continue
            if tok.name == SECTION_TAG or not self._is_directive_tag(tok):
                continue
            if self._completes_on_open(tok):
                return True
            if closes.next(self._close_names(tok), k, j) is not None:
                return True
        return False

    def _resolve(self, tok: Token) -> Tuple[Optional[ToolSchema], str, Dict[str, str]]:
        """Schema, kind and attributes for a generic or shorthand tool tag."""
        if tok.name == GENERIC_TAG:
            attrs = {k: v for k, v in tok.attrs.items() if k != "name"}
            kind = tok.attrs.get("name", "").strip()
            return self.registry.schema_for(kind), kind, attrs
        schema = self.registry.schema_for_tag(tok.name)
        renames = schema.shorthand_renames if schema else {}
        attrs = {renames.get(k, k): v for k, v in tok.attrs.items()}
        return schema, schema.name if schema else tok.name, attrs

    # ── Block construction (None + reason on rejection) ──

    def _build_tool(self, tok: Token, body: str, complete: bool) -> Tuple[Optional[Block], str]:
        schema, kind, attrs = self._resolve(tok)
        if not kind:
            return None, "tool tag without a name"

        if schema is None:
            if not complete:
                return None, f"unknown kind {kind} has no in-progress form"
            body = body.strip()
            if body and "content" not in attrs and "code" not in attrs:
                attrs["content"] = body
            return Block.tool(kind, attrs, body, complete=True), ""

        if not complete and (schema.void or not schema.streams):
            return None, f"{kind} has no in-progress form"

        missing = schema.missing(attrs)
        if missing:
            return None, f"{kind} missing required {', '.join(missing)}"
        attrs = schema.with_defaults(attrs)

        body = body.strip("\n") if schema.category == "file" else body.strip()
        if not body.strip():
            body = ""
            for name in schema.body_attrs:
                if attrs.get(name, "").strip():
                    body = attrs[name].strip()
                    break
        if schema.body_required and not body:
            return None, f"{kind} has an {_EMPTY_BODY}"
        return Block.tool(schema.name, attrs, body, complete=complete), ""

    def _place(self, ctx: ParseContext, block: Block) -> str:
        if block.kind == BlockKind.REASONING:
            html = self.registry.render_reasoning(block.text, block.complete)
        elif block.kind == BlockKind.DIRECTIVE:
            html = self.registry.render_directive(block.name, block.payload)
        elif block.kind == BlockKind.SECTION:
            html = self.registry.render_section(block.text)
        else:
            html = self.registry.render_tool(block.name, block.attributes, block.body, block.complete)
        return ctx.create_placeholder(block, html)

    # ── Main walk ──

    def extract(self, safe_text: str, final: bool = False) -> ExtractionResult:
        """Extract blocks from ``safe_text``.

        While streaming, trailing text that may still turn into a block (a
        cut-off tag, an unclosed directive or reasoning tag with nothing in
        it yet, a header line without its newline) is withheld and reported
        as ``pending``. With ``final`` the buffer will not grow any more, so
        such text is released as narrative instead.
        """
        safe_text = safe_text or ""
        ctx = ParseContext()
        tokens = tokenize(safe_text, self.tag_names)
        closes = _Closes(tokens)
        parts: List[str] = []
        rejected: List[str] = []
        pending: List[Tuple[int, int]] = []   # (parts index, token index) of unclosed opens
        last_complete = 0
        claimed_tail = False
        held = ""

        def reject(tok: Token, reason: str) -> None:
            rejected.append(reason)
            log.debug("rejected %s: %s", truncate(tok.raw, 120), reason)

        def body_of(start: int, end: int) -> str:
            return unescape_html("".join(
                t.raw for t in tokens[start:end] if t.type != TokenType.TRUNCATED))

        i = 0
        while i < len(tokens):
            tok = tokens[i]

            if tok.type == TokenType.TRUNCATED:
                if final:
                    parts.append(tok.raw)
                else:
                    log.debug("withholding truncated tag %s", truncate(tok.raw, 80))
                    held = safe_text[tok.start:]
                i += 1
                continue
            if tok.type in (TokenType.TEXT, TokenType.CLOSE) or tok.name == SECTION_TAG:
                parts.append(tok.raw)
                i += 1
                continue

            # Reasoning: claims up to its close, or the rest of the buffer
            if tok.name in REASONING_TAGS and tok.type == TokenType.OPEN:
                j = closes.next(REASONING_TAGS, i)
                if j is not None:
                    parts.append(self._place(ctx, Block.reasoning(clean_reasoning(body_of(i + 1, j)), True)))
                    last_complete = len(parts)
                    i = j + 1
                    continue
                text = clean_reasoning(body_of(i + 1, len(tokens)))
                if text:
                    parts.append(self._place(ctx, Block.reasoning(text, False)))
                    claimed_tail = True
                    break
                if not final:
                    held = safe_text[tok.start:]
                    break
                parts.append(tok.raw)
                i += 1
                continue

            directive = self.registry.directive_for_tag(tok.name)
            if directive is None and tok.name != GENERIC_TAG and self.registry.schema_for_tag(tok.name) is None:
                parts.append(tok.raw)
                i += 1
                continue

            # Complete on open: self-closing and void tags
            if self._completes_on_open(tok):
                block, reason = (None, "directive needs a body") if directive else self._build_tool(tok, "", True)
                if block is None:
                    reject(tok, reason)
                    parts.append(tok.raw)
                else:
                    parts.append(self._place(ctx, block))
                    last_complete = len(parts)
                i += 1
                continue

            j = closes.next(self._close_names(tok), i)
            if j is None:
                if directive is not None and not final:
                    # no in-progress form: hold everything back until it closes
                    held = safe_text[tok.start:]
                    break
                if directive is None:
                    pending.append((len(parts), i))
                else:
                    reject(tok, f"{directive.name} never closed")
                parts.append(tok.raw)
                i += 1
                continue
            if self._has_nested_complete(tokens, closes, i, j):
                reject(tok, f"{tok.name} body contains a complete directive")
                parts.append(tok.raw)
                i += 1
                continue

            body = body_of(i + 1, j)
            if directive is not None:
                content = body.strip()
                block = Block.directive(directive.name, {"content": content, "items": parse_todo_items(content)})
                reason = ""
            else:
                block, reason = self._build_tool(tok, body, True)
            if block is None:
                reject(tok, reason)
                parts.append(tok.raw)
                i += 1
                continue
            parts.append(self._place(ctx, block))
            last_complete = len(parts)
            i = j + 1

        if not claimed_tail:
            held = self._claim_tail(ctx, tokens, parts, pending, last_complete,
                                    body_of, reject, final) or held

        stream = "".join(parts)
        stream = self._map_text(ctx, stream, lambda s: self._command_results(ctx, s))
        stream = self._map_text(ctx, stream, lambda s: self._sections(ctx, s))
        if not final:
            stream, tail = self._hold_back(ctx, stream)
            held = tail + held
        blocks = self._assemble(ctx, stream)

        log.debug("extracted %d blocks (%d placeholders, %d rejected) from %d chars",
                  len(blocks), len(ctx.placeholders), len(rejected), len(safe_text or ""))
        return ExtractionResult(
            blocks=blocks,
            placeholders={token: p.html for token, p in ctx.placeholders.items()},
            stream=stream,
            rejected=rejected,
            pending=unescape_html(held),
        )

    def _claim_tail(self, ctx: ParseContext, tokens: List[Token], parts: List[str],
                    pending: List[Tuple[int, int]], last_complete: int,
                    body_of: Callable[[int, int], str], reject, final: bool) -> str:
        """Turn the first valid unclosed tool tag after the last complete block into the in-progress block.

        Returns the raw text withheld from the narrative, if any.
        """
        for part_index, tok_index in pending:
            if part_index < last_complete:
                continue
            tok = tokens[tok_index]
            block, reason = self._build_tool(tok, body_of(tok_index + 1, len(tokens)), False)
            if block is None:
                reject(tok, reason)
                if reason.endswith(_EMPTY_BODY) and not final:
                    # body not generated yet: keep the raw tag out of the narrative
                    withheld = "".join(parts[part_index:])
                    del parts[part_index:]
                    return withheld
                continue
            del parts[part_index:]
            parts.append(self._place(ctx, block))
            return ""
        return ""

    def _hold_back(self, ctx: ParseContext, stream: str) -> Tuple[str, str]:
        """Split off trailing text that may still become a block once more arrives.

        That is an unmatched command echo, or a last line that could grow
        into a section header.
        """
        tail = re.split(ctx.token_pattern, stream)[-1]
        cut = tail.find(_COMMAND_MARKER)
        if cut < 0:
            line_start = tail.rfind("\n") + 1
            line = tail[line_start:]
            if line.strip() and (_PENDING_LINE_RE.fullmatch(line)
                                 or _COMMAND_MARKER.startswith(line.lstrip())):
                cut = line_start
        if cut < 0:
            return stream, ""
        keep = len(stream) - len(tail) + cut
        return stream[:keep], stream[keep:]

    # ── Text passes ──

    def _map_text(self, ctx: ParseContext, stream: str, fn: Callable[[str], str]) -> str:
        pieces = re.split(ctx.token_pattern, stream)
        return "".join(p if p in ctx.placeholders else fn(p) for p in pieces)

    def _command_results(self, ctx: ParseContext, text: str) -> str:
        def _sub(m: re.Match) -> str:
            payload = {
                "command": unescape_html(m.group(1)).strip(),
                "exit_code": int(m.group(2)),
                "output": unescape_html(m.group(3)),
            }
            return self._place(ctx, Block.directive("command_result", payload))
        return _COMMAND_RESULT_RE.sub(_sub, text)

    def _sections(self, ctx: ParseContext, text: str) -> str:
        def _sub(m: re.Match) -> str:
            raw = m.group("h2") if m.group("h2") is not None else (m.group("phase") or m.group("md"))
            title = unescape_html(_INNER_TAG_RE.sub("", raw)).strip()
            if not title:
                return m.group(0)
            return self._place(ctx, Block.section(title))
        return _SECTION_RE.sub(_sub, text)

    def _assemble(self, ctx: ParseContext, stream: str) -> List[Block]:
        blocks: List[Block] = []
        for piece in re.split(ctx.token_pattern, stream):
            if piece in ctx.placeholders:
                blocks.append(ctx.placeholders[piece].block)
                continue
            text = unescape_html(piece).strip()
            if text:
                blocks.append(Block.narrative(text))
        for order, block in enumerate(blocks):
            block.source_order = order
        return blocks


def extract(safe_text: str, registry: Optional[BlockRegistry] = None,
            final: bool = False) -> ExtractionResult:
    """Extract blocks from quarantined text with a one-off extractor."""
    return Extractor(registry).extract(safe_text, final=final)
