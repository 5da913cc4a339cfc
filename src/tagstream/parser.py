"""Public entry point: a growing model buffer in, a renderable outline out.

One ``StreamRenderer`` serves one streaming response. Every call to
``parse`` receives the whole buffer accumulated so far and runs:

    sanitize -> quarantine -> extract -> render units -> segment -> reconcile

Blocks and placeholders are rebuilt on every call; only the outline state
carries over between calls. ``parse`` never raises.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .config import RendererConfig
from .extractor import Extractor
from .logger import get_logger, log_exception, truncate
from .models import Block, BlockKind, Phase, RenderedUnit
from .narrative import render_narrative
from .quarantine import escape_html, quarantine
from .reconciler import OutlineState, Reconciler
from .registry import BlockRegistry, default_registry
from .sanitizer import is_internal_log, sanitize
from .segmenter import segment

log = get_logger("parser")

Sanitizer = Callable[[str], str]
NarrativeRenderer = Callable[[str], str]


@dataclass
class RenderedStructure:
    """Result of one ``parse`` call."""
    units: List[RenderedUnit]
    phases: List[Phase]
    outline: OutlineState
    rejected: List[str] = field(default_factory=list)
    error: Optional[str] = None
    pending: str = ""

    @property
    def blocks(self) -> List[Block]:
        return [u.block for u in self.units]

    @property
    def html(self) -> str:
        return "".join(u.html for u in self.units)

    def to_dict(self) -> dict:
        data = {
            "units": [u.to_dict() for u in self.units],
            "phases": [
                {"title": p.title, "closed": p.closed, "blocks": len(p.blocks)}
                for p in self.phases
            ],
            "outline": self.outline.to_dict(),
        }
        if self.rejected:
            data["rejected"] = list(self.rejected)
        if self.error:
            data["error"] = self.error
        if self.pending:
            data["pending"] = self.pending
        return data


class StreamRenderer:
    """Parses successive snapshots of one streaming response.

    The registry, sanitizer and narrative formatter are injected so tests can
    substitute any of them.
    """

    def __init__(self, registry: Optional[BlockRegistry] = None,
                 config: Optional[RendererConfig] = None,
                 sanitizer: Optional[Sanitizer] = sanitize,
                 narrative_renderer: NarrativeRenderer = render_narrative):
        self.config = config or (registry.config if registry else RendererConfig())
        self.registry = registry or default_registry(self.config)
        self.sanitizer = sanitizer
        self.narrative_renderer = narrative_renderer
        self.extractor = Extractor(self.registry)
        self.reconciler = Reconciler(self.config, summary_renderer=self.registry.render_summary)
        self.state = OutlineState()
        self._lock = threading.Lock()
        self._calls = 0
        self._last_buffer = ""
        self._pending = ""
        self._flagged_internal = False
        self.latest: Optional[RenderedStructure] = None

    def parse(self, buffer: str) -> RenderedStructure:
        """Parse the full buffer accumulated so far."""
        with self._lock:
            self._calls += 1
            try:
                return self._parse(buffer or "")
            except Exception as e:
                log_exception(log, f"parse #{self._calls} failed, showing raw buffer", e)
                return self._fallback(buffer or "", e)

    def end_stream(self) -> OutlineState:
        """Summarise the open phase and freeze the outline until ``reset``.

        Text still withheld by the last ``parse`` (an unfinished header line,
        a cut-off tag) is released first, since the buffer is now final.
        """
        with self._lock:
            if self._pending and not self.state.ended:
                try:
                    # the newline completes a header left on the last line
                    self._parse(self._last_buffer + "\n", final=True)
                except Exception as e:
                    log_exception(log, "final parse failed, keeping the last outline", e)
            return self.reconciler.end_stream(self.state)

    def reset(self) -> None:
        """Forget the outline; the next ``parse`` starts a new response."""
        with self._lock:
            self.state = OutlineState()
            self._calls = 0
            self._last_buffer = ""
            self._pending = ""
            self._flagged_internal = False
            self.latest = None

    # ── Pipeline ──

    def _parse(self, buffer: str, final: bool = False) -> RenderedStructure:
        if not self._flagged_internal and is_internal_log(buffer):
            self._flagged_internal = True
            log.warning("buffer looks like a leaked internal log: %s", truncate(buffer, 160))
        text = buffer
        if self.config.sanitize and self.sanitizer is not None:
            text = self.sanitizer(text)

        safe = quarantine(text, self.registry.tag_names())
        result = self.extractor.extract(safe, final=final)
        self._last_buffer = buffer
        self._pending = result.pending

        units = [RenderedUnit(block=b, html=self._render_block(b, result.placeholders))
                 for b in result.blocks]
        html_by_block: Dict[int, str] = {id(u.block): u.html for u in units}

        phases = segment(result.blocks, self.config.initialization_title)
        self.reconciler.reconcile(phases, self.state, lambda b: html_by_block[id(b)])

        log.debug("parse #%d: %d chars -> %d units, %d phases, %d outline changes",
                  self._calls, len(buffer), len(units), len(phases), len(self.state.changes))
        self.latest = RenderedStructure(units=units, phases=phases, outline=self.state,
                                        rejected=list(result.rejected), pending=result.pending)
        return self.latest

    def _render_block(self, block: Block, placeholders: Dict[str, str]) -> str:
        if block.kind != BlockKind.NARRATIVE:
            return placeholders.get(block.placeholder or "", "")
        try:
            return self.narrative_renderer(block.text)
        except Exception as e:
            log_exception(log, f"narrative renderer failed on {truncate(block.text, 80)!r}", e)
            return f'<div class="response-card raw-fallback"><pre>{escape_html(block.text)}</pre></div>'

    def _fallback(self, buffer: str, error: Exception) -> RenderedStructure:
        block = Block.narrative(buffer)
        html = f'<div class="response-card raw-fallback"><pre>{escape_html(buffer)}</pre></div>'
        self.latest = RenderedStructure(units=[RenderedUnit(block=block, html=html)], phases=[],
                                        outline=self.state, error=f"{type(error).__name__}: {error}")
        return self.latest
