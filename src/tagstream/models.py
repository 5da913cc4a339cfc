"""Data model shared by the extractor, segmenter and reconciler.

Blocks, placeholders and the parse context live for exactly one parse call.
Phases are rebuilt on every call too; only the reconciler's outline state
(see reconciler.py) persists across calls of one streaming response.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class BlockKind(str, Enum):
    NARRATIVE = "narrative"
    REASONING = "reasoning"
    TOOL = "tool"
    DIRECTIVE = "directive"
    SECTION = "section"


@dataclass
class Block:
    """A typed unit extracted from the buffer.

    ``name`` is the tool kind (``create_file``) for tool invocations and the
    directive kind (``update_todo``) for directives. ``text`` carries the
    narrative/reasoning text or the section title.
    """
    kind: BlockKind
    source_order: int = 0
    text: str = ""
    name: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    complete: bool = True
    # Token of this block in the current pass; never compared across passes
    placeholder: Optional[str] = field(default=None, compare=False, repr=False)

    @classmethod
    def narrative(cls, text: str) -> "Block":
        return cls(kind=BlockKind.NARRATIVE, text=text)

    @classmethod
    def reasoning(cls, text: str, complete: bool = True) -> "Block":
        return cls(kind=BlockKind.REASONING, text=text, complete=complete)

    @classmethod
    def tool(cls, name: str, attributes: Dict[str, str], body: str = "",
             complete: bool = True) -> "Block":
        return cls(kind=BlockKind.TOOL, name=name, attributes=dict(attributes),
                   body=body, complete=complete)

    @classmethod
    def directive(cls, name: str, payload: Dict[str, Any]) -> "Block":
        return cls(kind=BlockKind.DIRECTIVE, name=name, payload=dict(payload))

    @classmethod
    def section(cls, title: str) -> "Block":
        return cls(kind=BlockKind.SECTION, text=title)

    @property
    def title(self) -> str:
        return self.text if self.kind == BlockKind.SECTION else ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "source_order": self.source_order,
            "complete": self.complete,
        }
        if self.text:
            data["text"] = self.text
        if self.name:
            data["name"] = self.name
        if self.attributes:
            data["attributes"] = dict(self.attributes)
        if self.body:
            data["body"] = self.body
        if self.payload:
            data["payload"] = dict(self.payload)
        return data


@dataclass
class Placeholder:
    """Token standing in for an extracted block inside the text stream."""
    token: str
    block: Block
    html: str


@dataclass
class ParseContext:
    """Per-call placeholder table.

    The nonce keeps tokens from two different calls distinct, and makes a
    collision with text the model produced practically impossible.
    """
    nonce: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    placeholders: Dict[str, Placeholder] = field(default_factory=dict)
    _count: int = 0

    def create_placeholder(self, block: Block, html: str) -> str:
        token = f"\x00BLOCK-{self.nonce}-{self._count}\x00"
        self._count += 1
        block.placeholder = token
        self.placeholders[token] = Placeholder(token=token, block=block, html=html)
        return token

    @property
    def token_pattern(self) -> str:
        return "(\x00BLOCK-" + self.nonce + r"-\d+" + "\x00)"


@dataclass
class ExtractionResult:
    """Output of one extractor pass over the whole buffer."""
    blocks: List[Block]
    placeholders: Dict[str, str]
    stream: str = ""
    rejected: List[str] = field(default_factory=list)
    # Trailing text held back until more of the buffer arrives
    pending: str = ""

    @property
    def incomplete(self) -> Optional[Block]:
        for block in self.blocks:
            if not block.complete:
                return block
        return None


@dataclass
class Phase:
    """Titled grouping of blocks; ``title`` is already normalized."""
    title: str
    blocks: List[Block] = field(default_factory=list)
    closed: bool = False
    number: Optional[int] = None


@dataclass
class RenderedUnit:
    """A block paired with its renderable HTML."""
    block: Block
    html: str

    def to_dict(self) -> Dict[str, Any]:
        return {"block": self.block.to_dict(), "html": self.html}
