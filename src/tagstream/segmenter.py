"""Phase segmenter: ordered blocks -> titled phases.

A section header reading ``PHASE <n>: <title>`` (possibly wrapped in
markdown heading or emphasis markers) opens a phase. Headers repeated
later in the stream, including "(cont.)" / "(continued)" variants, merge
into the phase they continue.
"""

import re
from typing import Dict, List, Optional, Tuple

from .models import Block, BlockKind, Phase

_MARKERS_RE = re.compile(r"^[#*_\s]+|[#*_\s]+$")
_PHASE_RE = re.compile(r"^PHASE\s+(\d+)\s*:\s*(.+)$", re.DOTALL)
_CONTINUATION_RE = re.compile(r"\s*\((?:cont(?:inuation|inued)?\.?)\)\s*$", re.IGNORECASE)

DEFAULT_INITIALIZATION_TITLE = "Initialization"


def normalize_phase_title(title: str) -> str:
    """Strip continuation suffixes and surrounding whitespace; case is kept."""
    previous = None
    title = title.strip()
    while previous != title:
        previous = title
        title = _CONTINUATION_RE.sub("", title).strip()
    return title


def parse_phase_header(text: str) -> Optional[Tuple[int, str]]:
    """``(number, normalized title)`` for a phase header, else None."""
    stripped = _MARKERS_RE.sub("", text or "")
    m = _PHASE_RE.match(stripped)
    if not m:
        return None
    title = normalize_phase_title(_MARKERS_RE.sub("", m.group(2)))
    if not title:
        return None
    return int(m.group(1)), title


def segment(blocks: List[Block], initialization_title: str = DEFAULT_INITIALIZATION_TITLE) -> List[Phase]:
    """Group ``blocks`` into phases in first-appearance order.

    Blocks before the first phase header form the initialization phase,
    which is folded into the first real phase when there is one. Every
    phase except the last one opened is closed.
    """
    init = Phase(title=initialization_title)
    phases: List[Phase] = []
    by_title: Dict[str, Phase] = {}
    current = init
    last_opened: Optional[Phase] = None

    for block in blocks:
        header = parse_phase_header(block.text) if block.kind == BlockKind.SECTION else None
        if header is None:
            current.blocks.append(block)
            continue
        number, title = header
        phase = by_title.get(title)
        if phase is None:
            phase = Phase(title=title, number=number)
            by_title[title] = phase
            phases.append(phase)
        current = phase
        last_opened = phase

    if phases:
        phases[0].blocks[:0] = init.blocks
    else:
        phases = [init]
        last_opened = init

    for phase in phases:
        phase.closed = phase is not last_opened
    return phases
