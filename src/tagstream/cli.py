"""Command-line replay of a model transcript through the stream renderer."""

import argparse
import json
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.tree import Tree

from .config import RendererConfig
from .logger import get_logger, init_logging
from .parser import RenderedStructure, StreamRenderer
from .reconciler import OutlineState

log = get_logger("cli")


class OutputFormat(Enum):
    """Output format options."""
    HUMAN = "human"
    JSON = "json"
    HTML = "html"


def replay(text: str, renderer: StreamRenderer, chunk_size: int) -> RenderedStructure:
    """Feed ``text`` to ``renderer`` as a buffer growing by ``chunk_size`` chars."""
    structure = renderer.parse("")
    for end in range(chunk_size, len(text) + chunk_size, chunk_size):
        structure = renderer.parse(text[:end])
    renderer.end_stream()
    # end_stream re-parses when text was still withheld
    return renderer.latest or structure


def build_tree(state: OutlineState) -> Tree:
    tree = Tree("[bold]Outline[/bold]")
    for group in state.groups:
        marker = "[dim](collapsed)[/dim]" if group.collapsed else "[green](open)[/green]"
        branch = tree.add(f"[bold cyan]{group.title}[/bold cyan] {marker}")
        for node in state.steps(group):
            label = Text(f"{node.kind}: {node.title}")
            if node.injected:
                label.stylize("yellow")
            if node.revision:
                label.append(f"  rev {node.revision}", style="dim")
            branch.add(label)
        if group.summary:
            summary = branch.add("[magenta]Summary[/magenta]")
            for bullet in group.summary:
                summary.add(Text(bullet))
    return tree


def print_human(structure: RenderedStructure, console: Console) -> None:
    console.print(build_tree(structure.outline))
    if structure.rejected:
        console.print(Panel("\n".join(structure.rejected), title="Left as text",
                            border_style="yellow"))
    if structure.error:
        console.print(Panel(structure.error, title="Error", border_style="red"))


def load_config(args: argparse.Namespace) -> RendererConfig:
    env_path = Path(args.env)
    if env_path.exists():
        config = RendererConfig.from_env(env_path)
    else:
        config = RendererConfig.from_env()
    if args.no_sanitize:
        config.sanitize = False
    return config


def run(args: argparse.Namespace) -> int:
    """Replay the input and print the result; returns the exit code."""
    try:
        config = load_config(args)
        config.validate()
        if args.chunk_size <= 0:
            raise ValueError(f"chunk size must be positive, got {args.chunk_size}")
    except ValueError as e:
        print(json.dumps({"success": False, "error": f"Configuration error: {e}"}))
        return 1

    if args.input == "-":
        text = sys.stdin.read()
    else:
        path = Path(args.input)
        if not path.exists():
            print(f"Error: {path} does not exist", file=sys.stderr)
            return 1
        text = path.read_text(encoding="utf-8")

    renderer = StreamRenderer(config=config)
    structure = replay(text, renderer, args.chunk_size)
    log.info("replayed %d chars in chunks of %d", len(text), args.chunk_size)

    output_format = OutputFormat(args.output_format)
    if output_format == OutputFormat.JSON:
        print(json.dumps(structure.to_dict(), indent=2))
    elif output_format == OutputFormat.HTML:
        print(structure.html)
    else:
        print_human(structure, Console())
    return 0 if structure.error is None else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagstream",
        description="Replay a model transcript as a growing buffer and show the parsed outline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Outline of a saved response
  tagstream response.txt

  # Simulate small network chunks, JSON output
  tagstream response.txt --chunk-size 8 --output-format json

  # Pipe input, rendered HTML units
  cat response.txt | tagstream - --output-format html
        """
    )
    parser.add_argument(
        "input",
        help="Transcript file, or - for stdin"
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=64,
        help="Characters added per growth event (default: 64)"
    )
    parser.add_argument(
        "--output-format",
        choices=[f.value for f in OutputFormat],
        default="human",
        help="Output format (default: human)"
    )
    parser.add_argument(
        "-e", "--env",
        type=str,
        default=".env",
        help="Path to .env file (default: .env)"
    )
    parser.add_argument(
        "--no-sanitize",
        action="store_true",
        help="Skip stripping leaked internal logs"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Echo the debug log to stderr"
    )
    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    init_logging(echo=args.verbose or None)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
