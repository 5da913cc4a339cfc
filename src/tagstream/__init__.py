"""Streaming parser that turns a growing LLM buffer into a phase-grouped outline."""

from .config import RendererConfig
from .extractor import Extractor, extract
from .models import Block, BlockKind, ExtractionResult, ParseContext, Phase, RenderedUnit
from .parser import RenderedStructure, StreamRenderer
from .quarantine import escape_html, quarantine, unescape_html
from .reconciler import MaterializedNode, OutlineState, PhaseGroup, Reconciler
from .registry import BlockRegistry, DirectiveSchema, ToolSchema, default_registry
from .sanitizer import is_internal_log, sanitize
from .segmenter import normalize_phase_title, segment
from .summary import summarize

__version__ = "0.1.0"
__all__ = [
    "StreamRenderer",
    "RenderedStructure",
    "RendererConfig",
    "BlockRegistry",
    "ToolSchema",
    "DirectiveSchema",
    "default_registry",
    "Extractor",
    "extract",
    "Block",
    "BlockKind",
    "ExtractionResult",
    "ParseContext",
    "Phase",
    "RenderedUnit",
    "escape_html",
    "unescape_html",
    "quarantine",
    "MaterializedNode",
    "OutlineState",
    "PhaseGroup",
    "Reconciler",
    "sanitize",
    "is_internal_log",
    "segment",
    "normalize_phase_title",
    "summarize",
]
