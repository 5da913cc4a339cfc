"""Configuration management for the stream renderer."""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Tuple
from dotenv import load_dotenv

from .logger import get_logger

log = get_logger("config")


DEFAULT_ARTIFACT_FILENAMES: Tuple[str, ...] = (
    "task.md",
    "implementation_plan.md",
    "walkthrough.md",
)


def get_global_config_path() -> Path:
    """Get path to global config: ~/.tagstream.json"""
    return Path.home() / ".tagstream.json"


def get_workspace_config_path(workspace: Optional[Path] = None) -> Path:
    """Get path to workspace config: workspace/.tagstream/config.json"""
    ws = workspace or Path.cwd()
    return ws / ".tagstream" / "config.json"


def load_json_config(path: Path) -> dict:
    """Settings from a JSON file; a missing or unreadable file counts as empty."""
    if path.exists():
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, IOError) as e:
            log.warning("ignoring config file %s: %s", path, e)
    return {}


def _as_bool(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_names(value, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        names = [v.strip() for v in value.split(",")]
    else:
        names = [str(v).strip() for v in value]
    return tuple(n for n in names if n)


@dataclass
class RendererConfig:
    """Tunables for rendering, summaries and sanitizing."""

    summary_max_paths: int = 3
    summary_text_limit: int = 500
    reasoning_summary_chars: int = 60
    instruction_preview_chars: int = 60
    highlight_code: bool = True
    artifact_filenames: Tuple[str, ...] = field(default_factory=lambda: DEFAULT_ARTIFACT_FILENAMES)
    initialization_title: str = "Initialization"
    sanitize: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "RendererConfig":
        defaults = cls()
        return cls(
            summary_max_paths=int(data.get("summary_max_paths", defaults.summary_max_paths)),
            summary_text_limit=int(data.get("summary_text_limit", defaults.summary_text_limit)),
            reasoning_summary_chars=int(data.get("reasoning_summary_chars", defaults.reasoning_summary_chars)),
            instruction_preview_chars=int(data.get("instruction_preview_chars", defaults.instruction_preview_chars)),
            highlight_code=_as_bool(data.get("highlight_code"), defaults.highlight_code),
            artifact_filenames=_as_names(data.get("artifact_filenames"), defaults.artifact_filenames),
            initialization_title=str(data.get("initialization_title", defaults.initialization_title)),
            sanitize=_as_bool(data.get("sanitize"), defaults.sanitize),
        )

    @classmethod
    def from_json(cls, workspace: Optional[Path] = None) -> "RendererConfig":
        """Load configuration from JSON files.

        Priority (later overrides earlier):
        1. ~/.tagstream.json (global)
        2. workspace/.tagstream/config.json (workspace-specific)
        """
        config_data = {}
        config_data.update(load_json_config(get_global_config_path()))
        config_data.update(load_json_config(get_workspace_config_path(workspace)))
        return cls.from_dict(config_data)

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "RendererConfig":
        """Load configuration from TAGSTREAM_* environment variables, falling back to JSON."""
        if env_path and env_path.exists():
            load_dotenv(env_path)
        else:
            load_dotenv()

        env_map = {
            "summary_max_paths": "TAGSTREAM_SUMMARY_MAX_PATHS",
            "summary_text_limit": "TAGSTREAM_SUMMARY_TEXT_LIMIT",
            "reasoning_summary_chars": "TAGSTREAM_REASONING_SUMMARY_CHARS",
            "instruction_preview_chars": "TAGSTREAM_INSTRUCTION_PREVIEW_CHARS",
            "highlight_code": "TAGSTREAM_HIGHLIGHT_CODE",
            "artifact_filenames": "TAGSTREAM_ARTIFACT_FILENAMES",
            "initialization_title": "TAGSTREAM_INITIALIZATION_TITLE",
            "sanitize": "TAGSTREAM_SANITIZE",
        }
        data = {key: os.getenv(var) for key, var in env_map.items() if os.getenv(var) is not None}

        # Nothing set in the environment: use the JSON files
        if not data:
            return cls.from_json()

        return cls.from_dict(data)

    def validate(self) -> bool:
        """Validate the configuration."""
        for name in ("summary_max_paths", "summary_text_limit",
                     "reasoning_summary_chars", "instruction_preview_chars"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if not self.initialization_title.strip():
            raise ValueError("initialization_title must not be empty")
        return True
