"""Reconciler: folds freshly segmented phases into a persistent outline.

The outline is an arena of step nodes addressed by integer id. Phase
groups hold ordered id lists. Each parse call walks the new units of a
phase against the group's ids positionally:

- injected nodes (added by the surrounding application) are skipped
- a node with the same kind as the next unit is updated in place
- on a kind mismatch the unit is inserted before the node
- when ids run out, the unit is appended

Nothing is ever deleted here; only ``OutlineState.prune`` removes nodes.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .config import RendererConfig
from .logger import get_logger
from .models import Block, BlockKind, Phase
from .summary import summarize

log = get_logger("reconciler")

# Block -> rendered html for that block
BlockRenderer = Callable[[Block], str]
SummaryRenderer = Callable[[List[str]], str]

_STEP_TITLES = {
    BlockKind.NARRATIVE.value: "AI Message",
    BlockKind.REASONING.value: "Reasoning",
    BlockKind.SECTION.value: "Section",
}
# "- item", "* item", "+ item" or "1. item"
_LIST_ITEM_RE = re.compile(r"(?:[-*+]|\d+\.)\s")


# ── Arena ────────────────────────────────────────────────────────

@dataclass
class MaterializedNode:
    id: int
    kind: str
    content: str
    title: str = ""
    injected: bool = False
    role: str = ""
    revision: int = 0

    def to_dict(self) -> dict:
        data = {"id": self.id, "kind": self.kind, "title": self.title,
                "content": self.content, "revision": self.revision}
        if self.injected:
            data["injected"] = True
            data["role"] = self.role
        return data


@dataclass
class PhaseGroup:
    title: str
    step_ids: List[int] = field(default_factory=list)
    collapsed: bool = False
    summary: List[str] = field(default_factory=list)
    summary_html: str = ""
    blocks: List[Block] = field(default_factory=list)


@dataclass
class Step:
    """A grouped run of blocks that becomes one step node."""
    kind: str
    blocks: List[Block] = field(default_factory=list)
    parts: List[str] = field(default_factory=list)

    @property
    def html(self) -> str:
        if len(self.parts) == 1:
            return self.parts[0]
        return '<div class="grouped-content">' + "".join(self.parts) + "</div>"

    @property
    def title(self) -> str:
        for block in self.blocks:
            if block.kind in (BlockKind.TOOL, BlockKind.DIRECTIVE):
                return block.name
        return _STEP_TITLES.get(self.kind, self.kind)


class OutlineState:
    """Persistent outline for one streaming response."""

    def __init__(self):
        self.nodes: Dict[int, MaterializedNode] = {}
        self.groups: List[PhaseGroup] = []
        self.current_group: Optional[PhaseGroup] = None
        self.ended = False
        self.changes: List[Tuple[str, int]] = []
        self._next_id = 0

    def new_node(self, kind: str, content: str, title: str = "",
                 injected: bool = False, role: str = "") -> MaterializedNode:
        node = MaterializedNode(id=self._next_id, kind=kind, content=content,
                                title=title, injected=injected, role=role)
        self._next_id += 1
        self.nodes[node.id] = node
        return node

    def group(self, title: str) -> Optional[PhaseGroup]:
        for group in self.groups:
            if group.title == title:
                return group
        return None

    def inject(self, kind: str, content: str, role: str = "system", title: str = "",
               group_title: Optional[str] = None) -> MaterializedNode:
        """Add an application-owned node to a group (the current one by default).

        Injected nodes are never matched, moved or removed by reconciliation.
        """
        group = self.group(group_title) if group_title else self.current_group
        if group is None:
            group = PhaseGroup(title=group_title or RendererConfig().initialization_title)
            self.groups.append(group)
            self.current_group = group
        node = self.new_node(kind, content, title=title, injected=True, role=role)
        group.step_ids.append(node.id)
        self.changes.append(("inject", node.id))
        log.debug("injected %s node %d into %s", role, node.id, group.title)
        return node

    def prune(self, node_id: int) -> bool:
        """Remove a node; the only way a node ever disappears."""
        if self.nodes.pop(node_id, None) is None:
            return False
        for group in self.groups:
            if node_id in group.step_ids:
                group.step_ids.remove(node_id)
        self.changes.append(("prune", node_id))
        return True

    def steps(self, group: PhaseGroup) -> List[MaterializedNode]:
        return [self.nodes[i] for i in group.step_ids]

    def to_dict(self) -> dict:
        return {
            "ended": self.ended,
            "current": self.current_group.title if self.current_group else None,
            "groups": [
                {
                    "title": g.title,
                    "collapsed": g.collapsed,
                    "summary": list(g.summary),
                    "steps": [n.to_dict() for n in self.steps(g)],
                }
                for g in self.groups
            ],
        }


# ── Grouping ─────────────────────────────────────────────────────

def _is_list_shaped(block: Block) -> bool:
    lines = [line.strip() for line in block.text.strip().splitlines() if line.strip()]
    if not lines:
        return False
    return all(_LIST_ITEM_RE.match(line) for line in lines)


def group_units(blocks: List[Block], render: BlockRenderer) -> List[Step]:
    """Merge blocks into steps.

    Consecutive narrative blocks merge; a step ending in a colon takes the
    next block; a list-shaped narrative joins the preceding step. A step's
    kind is that of its first block, so it stays stable while later blocks
    stream into it.
    """
    steps: List[Step] = []
    for block in blocks:
        last = steps[-1] if steps else None
        narrative = block.kind == BlockKind.NARRATIVE
        merge = False
        if last is not None:
            tail = last.blocks[-1]
            if narrative and tail.kind == BlockKind.NARRATIVE:
                merge = True
            elif tail.kind == BlockKind.NARRATIVE and tail.text.rstrip().endswith(":"):
                merge = True
            elif narrative and _is_list_shaped(block):
                merge = True
        if merge:
            last.blocks.append(block)
            last.parts.append(render(block))
        else:
            steps.append(Step(kind=block.kind.value, blocks=[block], parts=[render(block)]))
    return steps


# ── Reconciler ───────────────────────────────────────────────────

class Reconciler:
    """Applies segmented phases to an ``OutlineState``.

    Not safe for concurrent calls on the same state; the parser serialises
    calls per stream.
    """

    def __init__(self, config: Optional[RendererConfig] = None,
                 summary_renderer: Optional[SummaryRenderer] = None):
        self.config = config or RendererConfig()
        self.summary_renderer = summary_renderer

    def close_group(self, state: OutlineState, group: PhaseGroup) -> None:
        group.summary = summarize(group.blocks, self.config)
        if self.summary_renderer is not None:
            group.summary_html = self.summary_renderer(group.summary)
        group.collapsed = True
        state.changes.append(("collapse", state.groups.index(group)))
        log.debug("closed phase %r (%d bullets)", group.title, len(group.summary))

    def reconcile(self, phases: List[Phase], state: OutlineState,
                  render: BlockRenderer) -> OutlineState:
        state.changes = []
        if state.ended:
            return state

        init_title = self.config.initialization_title
        for phase in phases:
            if phase.title == init_title and not phase.blocks and state.group(init_title) is None:
                continue
            group = state.group(phase.title)
            if group is None and self._adopts_initialization(state, phase):
                # the first real header arrived: the implicit group becomes that phase
                group = state.groups[0]
                log.debug("initialization group renamed to %r", phase.title)
                group.title = phase.title
            if group is None:
                if state.current_group is not None and not state.current_group.collapsed:
                    self.close_group(state, state.current_group)
                group = PhaseGroup(title=phase.title)
                state.groups.append(group)
                state.current_group = group
                log.debug("opened phase %r", phase.title)
            group.blocks = list(phase.blocks)
            self._sync(state, group, group_units(phase.blocks, render))
        return state

    def _adopts_initialization(self, state: OutlineState, phase: Phase) -> bool:
        return (len(state.groups) == 1
                and state.groups[0].title == self.config.initialization_title
                and not state.groups[0].collapsed
                and phase.title != self.config.initialization_title)

    def _sync(self, state: OutlineState, group: PhaseGroup, steps: List[Step]) -> None:
        ids = group.step_ids
        d = 0
        for step in steps:
            while d < len(ids) and state.nodes[ids[d]].injected:
                d += 1
            if d >= len(ids):
                node = state.new_node(step.kind, step.html, title=step.title)
                ids.append(node.id)
                d = len(ids)
                state.changes.append(("append", node.id))
                continue
            node = state.nodes[ids[d]]
            if node.kind == step.kind:
                if node.content != step.html:
                    node.content = step.html
                    node.title = step.title
                    node.revision += 1
                    state.changes.append(("update", node.id))
                d += 1
            else:
                node = state.new_node(step.kind, step.html, title=step.title)
                ids.insert(d, node.id)
                d += 1
                state.changes.append(("insert", node.id))

    def end_stream(self, state: OutlineState) -> OutlineState:
        """Summarise and collapse the current group; the outline is then frozen."""
        if not state.ended and state.current_group is not None and not state.current_group.collapsed:
            self.close_group(state, state.current_group)
        state.ended = True
        return state
