"""Centralized logger for the stream renderer.

Every parse pass, rejected directive and renderer failure is written to
.tagstream_output/tagstream.log, so a garbled chat transcript can be
reconstructed after the fact from the log alone.

Usage in any module:
    from .logger import get_logger
    log = get_logger("extractor")
    log.debug("extracted %d blocks", n)

The file rotates at 5 MB and keeps the last 5 files. Set TAGSTREAM_LOG_DIR
to move it, TAGSTREAM_DEBUG (or ``tagstream --verbose``) to echo to stderr.
"""

import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_NAME = "tagstream"
LOG_FILENAME = "tagstream.log"

_FORMAT = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

_initialized = False
_log_dir: Optional[Path] = None
_echo_handler: Optional[logging.Handler] = None


def log_dir() -> Path:
    """Directory the log file lives in (created on first use)."""
    global _log_dir
    if _log_dir is None:
        env_dir = os.environ.get("TAGSTREAM_LOG_DIR")
        _log_dir = Path(env_dir) if env_dir else Path.cwd() / ".tagstream_output"
    _log_dir.mkdir(parents=True, exist_ok=True)
    return _log_dir


def init_logging(directory: Optional[str] = None,
                 level: int = logging.DEBUG,
                 echo: Optional[bool] = None) -> None:
    """Attach the rotating file handler once; later calls only toggle echo."""
    global _initialized, _log_dir

    if directory:
        _log_dir = Path(directory)
    if echo is None:
        echo = bool(os.environ.get("TAGSTREAM_DEBUG"))
    set_echo(echo)

    if _initialized:
        return
    _initialized = True

    root = logging.getLogger(ROOT_NAME)
    root.setLevel(level)
    if any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        return

    log_path = log_dir() / LOG_FILENAME
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_FORMAT)
    root.addHandler(handler)
    root.info("=== tagstream logging started === pid=%d log=%s", os.getpid(), log_path)


def set_echo(enabled: bool) -> None:
    """Mirror log records to stderr (on) or stop mirroring (off)."""
    global _echo_handler
    root = logging.getLogger(ROOT_NAME)
    if enabled and _echo_handler is None:
        _echo_handler = logging.StreamHandler(sys.stderr)
        _echo_handler.setFormatter(_FORMAT)
        root.addHandler(_echo_handler)
    elif not enabled and _echo_handler is not None:
        root.removeHandler(_echo_handler)
        _echo_handler = None


def get_logger(name: str) -> logging.Logger:
    """Child logger under the ``tagstream`` namespace.

    Module-level loggers are created at import time, so the first call
    sets up the file handler.
    """
    if not _initialized:
        init_logging()
    return logging.getLogger(f"{ROOT_NAME}.{name}")


# ── Helpers ──────────────────────────────────────────────────

def log_exception(logger: logging.Logger, msg: str, exc: BaseException) -> None:
    """Log an exception with its full traceback."""
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("%s: %s\n%s", msg, exc, "".join(tb))


def truncate(text: str, max_len: int = 200) -> str:
    """One-line excerpt of buffer text for a log record.

    Newlines and the NUL delimiters of placeholder tokens are made visible.
    """
    if not text:
        return "(empty)"
    text = text.replace("\n", "\\n").replace("\x00", "\\0")
    if len(text) <= max_len:
        return text
    return text[:max_len] + f"...[{len(text)} chars]"
