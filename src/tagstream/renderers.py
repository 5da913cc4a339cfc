"""HTML card renderers, one per directive kind.

Every renderer is a pure function of its inputs. Interpolated values are
escaped here; action controls carry URL-encoded ``data-*`` attributes for
the surrounding UI to act on (this package never executes anything).
"""

import re
from typing import Dict, List, Optional
from urllib.parse import quote

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name, get_lexer_for_filename
from pygments.util import ClassNotFound

from .config import RendererConfig
from .quarantine import escape_html

_e = escape_html

_FENCE_RE = re.compile(r"^```[A-Za-z0-9_+-]*\n([\s\S]*?)\n```$")
_FORMATTER = HtmlFormatter(nowrap=True)


def _data(value: str) -> str:
    """URL-encode a value for a data-* attribute (encodeURIComponent rules)."""
    return quote(value or "", safe="-_.!~*'()")


def _short(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "…"


def basename(path: str) -> str:
    return (path or "").rstrip("/").split("/")[-1] or path or ""


# ── Code highlighting ────────────────────────────────────────────

def strip_code_fence(content: str) -> str:
    """Drop a markdown fence wrapped around file content."""
    match = _FENCE_RE.match(content.strip())
    if match:
        return match.group(1)
    content = re.sub(r"^```[A-Za-z0-9_+-]*\n", "", content)
    return re.sub(r"\n```$", "", content)


def language_for_path(path: str) -> str:
    """Best-effort language label for a file path ("text" if unknown)."""
    try:
        lexer = get_lexer_for_filename(basename(path))
    except ClassNotFound:
        return "text"
    return lexer.aliases[0] if lexer.aliases else lexer.name.lower()


def highlight_code(code: str, language: Optional[str] = None,
                   filename: Optional[str] = None, enabled: bool = True) -> str:
    """Highlight ``code`` to inline HTML spans.

    Unknown languages fall back to escaped plain text.
    """
    if not enabled or not code:
        return _e(code)
    try:
        if language:
            lexer = get_lexer_by_name(language, stripnl=False, ensurenl=False)
        elif filename:
            lexer = get_lexer_for_filename(basename(filename), code, stripnl=False, ensurenl=False)
        else:
            return _e(code)
    except ClassNotFound:
        return _e(code)
    return highlight(code, lexer, _FORMATTER)


def render_raw_fallback(body: str, label: str = "") -> str:
    """Escaped raw text; used when a kind renderer fails."""
    title = f'<div class="header">{_e(label)}</div>' if label else ""
    return f'<div class="tool-block raw-fallback">{title}<pre>{_e(body)}</pre></div>'


# ── Reasoning ────────────────────────────────────────────────────

def render_reasoning(text: str, complete: bool, config: RendererConfig) -> str:
    lines = [line for line in text.split("\n") if line.strip()]
    first = lines[0] if lines else "Thinking..."
    if len(first) > config.reasoning_summary_chars:
        first = first[:config.reasoning_summary_chars] + "..."
    if complete:
        summary = f'<span class="thinking-summary-text">{_e(first)}</span>'
        icon = "chevron-right"
    else:
        summary = '<span class="thinking-summary-text">Thinking...</span>'
        icon = "loader-2"
    return (
        f'<details class="thinking-block" data-complete="{str(complete).lower()}">'
        f'<summary class="thinking-summary"><i data-lucide="{icon}"></i>{summary}</summary>'
        f'<div class="thinking-content">{_e(text)}</div>'
        f'</details>'
    )


# ── Tool cards ───────────────────────────────────────────────────

def _render_file_card(action: str, attrs: Dict[str, str], body: str, complete: bool,
                      config: RendererConfig) -> str:
    path = attrs.get("path", "")
    if not complete:
        verb = "Creating" if action == "create" else "Updating"
        return (
            f'<details class="code-thinking-block" data-path="{_data(path)}">'
            f'<summary class="code-thinking-summary"><i data-lucide="loader-2"></i>'
            f'<span class="code-thinking-text">{verb} {_e(basename(path))}...</span></summary>'
            f'<div class="code-thinking-hint">Generating... ({len(body.splitlines())} lines so far)</div>'
            f'</details>'
        )

    code = strip_code_fence(body)
    language = language_for_path(path)
    highlighted = highlight_code(code, filename=path, enabled=config.highlight_code)
    label = "Create File" if action == "create" else "Apply Edit"
    icon = "file-plus" if action == "create" else "file-code"
    title = f"Create: {path}" if action == "create" else f"Update: {path}"
    return (
        f'<div class="file-edit-card" data-tool="{action}_file" data-path="{_e(path)}">'
        f'<div class="file-edit-header"><i data-lucide="{icon}"></i>'
        f'<span class="file-title">{_e(title)}</span>'
        f'<span class="file-meta">{_e(language)} · {len(code.splitlines())} lines</span></div>'
        f'<div class="file-code-collapsed"><pre><code class="language-{_e(language)}">{highlighted}</code></pre></div>'
        f'<div class="footer">'
        f'<button class="file-action-btn tool-create-btn" data-path="{_data(path)}" '
        f'data-content="{_data(code)}" data-type="{action}">{label}</button>'
        f'<button class="file-action-btn tool-create-btn" data-path="{_data(path)}" '
        f'data-content="" data-type="reject">Reject</button>'
        f'</div></div>'
    )


def render_create_file(attrs, body, complete, config):
    return _render_file_card("create", attrs, body, complete, config)


def render_update_file(attrs, body, complete, config):
    return _render_file_card("update", attrs, body, complete, config)


def render_run_command(attrs, body, complete, config):
    cmd = body.strip()
    state = "" if complete else " streaming"
    button = (
        f'<button class="msg-action-btn tool-run-btn" data-cmd="{_data(cmd)}">Run</button>'
        if complete else ""
    )
    return (
        f'<div class="tool-block command-block{state}" data-cmd="{_e(cmd)}">'
        f'<div class="header"><i data-lucide="terminal"></i> Suggested Command</div>'
        f'<div class="content">{_e(cmd)}</div>'
        f'<div class="footer">{button}</div></div>'
    )


def render_delete_file(attrs, body, complete, config):
    path = attrs.get("path", "")
    return (
        f'<div class="tool-block delete-block" data-path="{_e(path)}">'
        f'<div class="header delete-header"><i data-lucide="trash-2"></i> Delete File: {_e(path)}</div>'
        f'<div class="footer"><button class="msg-action-btn tool-delete-btn" '
        f'data-path="{_data(path)}">Delete File</button></div></div>'
    )


def render_search_project(attrs, body, complete, config):
    query = body.strip()
    return (
        f'<div class="tool-block search-block">'
        f'<div class="header"><i data-lucide="search"></i> Suggested Search</div>'
        f'<div class="content">{_e(query)}</div>'
        f'<div class="footer"><button class="msg-action-btn tool-search-btn" '
        f'data-query="{_data(query)}">Search Project</button></div></div>'
    )


def render_get_problems(attrs, body, complete, config):
    return (
        '<div class="tool-block problems-block">'
        '<div class="header"><i data-lucide="alert-triangle"></i> Get Problems</div>'
        '<div class="content">Check project for errors and warnings.</div>'
        '<div class="footer"><button class="msg-action-btn tool-problems-btn">Check Problems</button></div>'
        '</div>'
    )


def render_delegate_task(attrs, body, complete, config):
    agent_id = attrs.get("agent_id", "")
    instruction = attrs.get("instruction", "")
    short = _short(instruction, config.instruction_preview_chars)
    return (
        f'<div class="tool-card-compact delegate-card">'
        f'<span class="tool-label-compact">Delegate</span>'
        f'<span class="tool-content-compact">{_e(agent_id)} → {_e(short)}</span>'
        f'<button class="tool-action-btn-compact tool-delegate-btn" data-agent_id="{_data(agent_id)}" '
        f'data-instruction="{_data(instruction)}">Send</button></div>'
    )


def render_list_directory(attrs, body, complete, config):
    path = attrs.get("path", ".")
    recursive = attrs.get("recursive", "false").lower() == "true"
    title = "Recursive Directory Listing" if recursive else "List Directory"
    icon = "folder-tree" if recursive else "folder-open"
    return (
        f'<div class="tool-card-compact list-dir-card" data-tool="list_directory">'
        f'<i data-lucide="{icon}"></i><span class="tool-label-compact">{title}</span>'
        f'<code class="tool-content-compact">{_e(path)}</code>'
        f'<button class="tool-action-btn-compact tool-list-dir-btn" data-path="{_data(path)}" '
        f'data-recursive="{str(recursive).lower()}">Run</button></div>'
    )


def render_agent(attrs, body, complete, config):
    return (
        f'<div class="tool-card-compact agent-card">'
        f'<span class="tool-label-compact">{_e(attrs.get("agent", "agent"))}</span>'
        f'<span class="tool-content-compact">{_e(attrs.get("status", ""))}</span></div>'
    )


def render_clarification(attrs, body, complete, config):
    return (
        f'<div class="tool-card-compact clarification-card">'
        f'<span class="tool-label-compact">Clarification Needed</span>'
        f'<div class="tool-content-compact">{_e(body.strip())}</div></div>'
    )


def render_view_file(attrs, body, complete, config):
    path = attrs.get("path", "")
    return (
        f'<div class="tool-card-compact view-file-card" data-tool="view_file" data-path="{_e(path)}">'
        f'<i data-lucide="eye"></i><span class="tool-label-compact">View File</span>'
        f'<code class="tool-content-compact file-path">{_e(path)}</code>'
        f'<button class="tool-action-btn-compact tool-view-btn" data-path="{_data(path)}">Open</button></div>'
    )


def render_preview_url(attrs, body, complete, config):
    url = attrs.get("url", "")
    return (
        f'<div class="tool-card-compact webview-card">'
        f'<i data-lucide="globe"></i><span class="tool-label-compact">Live View</span>'
        f'<code class="tool-content-compact">{_e(url)}</code>'
        f'<button class="tool-action-btn-compact tool-preview-btn" data-url="{_data(url)}">Open</button></div>'
    )


def render_generic_tool(name: str, attrs: Dict[str, str], config: RendererConfig) -> str:
    rows = "".join(
        f'<li><span class="arg-name">{_e(k)}</span> <code>{_e(_short(v, 200))}</code></li>'
        for k, v in attrs.items()
    )
    return (
        f'<div class="tool-block generic-tool-card" data-tool="{_e(name)}">'
        f'<div class="header"><i data-lucide="wrench"></i> {_e(name)}</div>'
        f'<ul class="tool-args">{rows}</ul>'
        f'<div class="footer"><button class="msg-action-btn tool-generic-btn" data-tool="{_data(name)}" '
        f'data-args="{_data(_encode_args(attrs))}">Run Tool</button></div></div>'
    )


def _encode_args(attrs: Dict[str, str]) -> str:
    return "&".join(f"{quote(k)}={quote(v)}" for k, v in attrs.items())


# ── Directives ───────────────────────────────────────────────────

def render_todo(payload: dict, config: RendererConfig) -> str:
    items = payload.get("items") or []
    if items:
        rows = "".join(
            f'<li class="todo-item{" done" if item["done"] else ""}">'
            f'<input type="checkbox" disabled{" checked" if item["done"] else ""}> {_e(item["title"])}</li>'
            for item in items
        )
        content = f'<ul class="todo-list">{rows}</ul>'
    else:
        content = f'<pre>{_e(payload.get("content", ""))}</pre>'
    return (
        f'<div class="tool-block todo-block">'
        f'<div class="header"><i data-lucide="list-todo"></i> Plan Update</div>'
        f'<div class="content">{content}</div></div>'
    )


def render_command_result(payload: dict, config: RendererConfig) -> str:
    cmd = payload.get("command", "")
    exit_code = payload.get("exit_code", "")
    status = "ok" if str(exit_code) == "0" else "failed"
    return (
        f'<div class="tool-block command-result-block {status}" data-cmd="{_e(cmd)}">'
        f'<div class="header"><i data-lucide="terminal"></i> {_e(cmd)} '
        f'<span class="exit-code">exit {_e(str(exit_code))}</span></div>'
        f'<pre class="command-output">{_e(payload.get("output", ""))}</pre></div>'
    )


# ── Structure ────────────────────────────────────────────────────

def render_section(title: str) -> str:
    return f'<h2 class="section-header">{_e(title)}</h2>'


def render_phase_summary(bullets: List[str]) -> str:
    if not bullets:
        return ""
    items = "".join(f"<li>{_e(b)}</li>" for b in bullets)
    return f'<div class="phase-summary-block"><div class="phase-summary-title">Summary</div><ul>{items}</ul></div>'
