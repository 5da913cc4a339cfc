"""Digest of a closed phase: what was read, written and run."""

from dataclasses import dataclass, field
from typing import List, Optional

from .config import RendererConfig
from .logger import get_logger, log_exception
from .models import Block, BlockKind
from .renderers import basename

log = get_logger("summary")

_TRIVIAL_COMMANDS = ("ls", "cat")


@dataclass
class PhaseStats:
    lead: str = ""
    listings: int = 0
    read: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)


def _add(items: List[str], value: str) -> None:
    if value and value not in items:
        items.append(value)


def _is_trivial(command: str) -> bool:
    head = command.split(None, 1)[0] if command.split() else ""
    return head in _TRIVIAL_COMMANDS


def _lead_line(text: str, limit: int) -> str:
    first = text.strip().split("\n")[0].strip()
    if len(first) > limit:
        return first[:limit] + "..."
    return first


def collect_stats(blocks: List[Block], config: RendererConfig) -> PhaseStats:
    stats = PhaseStats()
    artifacts = set(config.artifact_filenames)

    for block in blocks:
        if block.kind == BlockKind.NARRATIVE and not stats.lead:
            stats.lead = _lead_line(block.text, config.summary_text_limit)
            continue
        if block.kind != BlockKind.TOOL or not block.complete:
            continue

        name = block.name
        if name == "list_directory":
            stats.listings += 1
        elif name == "view_file":
            _add(stats.read, basename(block.attributes.get("path", "")))
        elif name == "run_command":
            command = block.body.strip()
            if "ls -R" in command:
                stats.listings += 1
            elif command and not _is_trivial(command):
                stats.commands.append(command)
        elif name in ("create_file", "update_file"):
            filename = basename(block.attributes.get("path", "")) or "unknown"
            if filename in artifacts:
                _add(stats.artifacts, filename)
            elif name == "create_file":
                _add(stats.created, filename)
            elif filename not in stats.created:
                _add(stats.modified, filename)
    return stats


def format_bullets(stats: PhaseStats, config: RendererConfig) -> List[str]:
    bullets: List[str] = []
    if stats.lead:
        bullets.append(stats.lead)
    if stats.listings:
        suffix = f" ({stats.listings} listings)" if stats.listings > 1 else ""
        bullets.append(f"Analyzed directory structure{suffix}")
    if stats.read:
        shown = ", ".join(stats.read[:config.summary_max_paths])
        more = "..." if len(stats.read) > config.summary_max_paths else ""
        bullets.append(f"Read {len(stats.read)} files: {shown}{more}")
    if stats.created:
        bullets.append(f"Created: {', '.join(stats.created)}")
    if stats.modified:
        bullets.append(f"Modified: {', '.join(stats.modified)}")
    if stats.artifacts:
        bullets.append(f"Updated Artifacts: {', '.join(stats.artifacts)}")
    if stats.commands:
        more = f" (+{len(stats.commands) - 1} more)" if len(stats.commands) > 1 else ""
        bullets.append(f"Ran commands: {stats.commands[0]}{more}")
    return bullets


def summarize(blocks: List[Block], config: Optional[RendererConfig] = None) -> List[str]:
    """Fixed-order bullet list for a phase; empty categories are omitted.

    Never raises: a failure is logged and yields no bullets.
    """
    config = config or RendererConfig()
    try:
        return format_bullets(collect_stats(blocks, config), config)
    except Exception as e:
        log_exception(log, "phase summary failed", e)
        return []
