"""Single source of truth for every directive kind the extractor knows.

Each tool-invocation kind is defined ONCE in TOOL_SCHEMAS, in extraction
priority order. The quarantine allow-list, the extractor, and the renderer
dispatch all derive from this table.

Adding a new kind?  Add a ToolSchema here (or ``BlockRegistry.register`` it
at the right position) and it propagates everywhere.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .config import RendererConfig
from .logger import get_logger, log_exception
from . import renderers

log = get_logger("registry")

# attrs, body, complete, config -> html
ToolRenderer = Callable[[Dict[str, str], str, bool, RendererConfig], str]
DirectiveRenderer = Callable[[dict, RendererConfig], str]

GENERIC_TAG = "tool"
SECTION_TAG = "h2"
REASONING_TAGS: Tuple[str, ...] = ("thinking", "think")


# ── Schema ───────────────────────────────────────────────────────

@dataclass
class ToolSchema:
    """Canonical definition of a tool-invocation kind.

    ``optional`` maps attribute name to its default ("" means no default).
    ``body_attrs`` name attributes that stand in for an empty body; with
    ``body_required`` an invocation whose body is still empty is rejected.
    ``void`` tags never have a close tag and complete on open.
    """
    name: str
    render: ToolRenderer
    required: Tuple[str, ...] = ()
    optional: Dict[str, str] = field(default_factory=dict)
    shorthand: Optional[str] = None
    body_required: bool = False
    body_attrs: Tuple[str, ...] = ()
    streams: bool = True
    void: bool = False
    shorthand_renames: Dict[str, str] = field(default_factory=dict)
    category: str = "general"       # file, shell, search, agent, ui

    @property
    def shorthand_tag(self) -> str:
        return self.shorthand or self.name

    def missing(self, attrs: Dict[str, str]) -> List[str]:
        return [a for a in self.required if not attrs.get(a, "").strip()]

    def with_defaults(self, attrs: Dict[str, str]) -> Dict[str, str]:
        merged = dict(attrs)
        for key, default in self.optional.items():
            if default and not merged.get(key):
                merged[key] = default
        return merged


@dataclass
class DirectiveSchema:
    """Directive kinds render a parsed payload and have no in-progress form."""
    name: str
    render: DirectiveRenderer
    tag: Optional[str] = None       # None: recognised by text pattern, not a tag


# ── The Registry ─────────────────────────────────────────────────

TOOL_SCHEMAS: List[ToolSchema] = [
    # --- File operations ---
    ToolSchema("create_file", renderers.render_create_file, category="file",
               required=("path",), body_required=True),
    ToolSchema("update_file", renderers.render_update_file, category="file",
               required=("path",), body_required=True),

    # --- Shell ---
    ToolSchema("run_command", renderers.render_run_command, category="shell",
               body_required=True, body_attrs=("command", "cmd")),

    ToolSchema("delete_file", renderers.render_delete_file, category="file",
               required=("path",)),

    # --- Search / exploration ---
    ToolSchema("search_project", renderers.render_search_project, category="search",
               body_required=True, body_attrs=("query",)),
    ToolSchema("get_problems", renderers.render_get_problems, category="search"),

    # --- Agents ---
    ToolSchema("delegate_task", renderers.render_delegate_task, category="agent",
               required=("agent_id", "instruction")),

    ToolSchema("list_directory", renderers.render_list_directory, category="search",
               optional={"path": ".", "recursive": "false"}),

    ToolSchema("agent", renderers.render_agent, category="agent",
               required=("status",), optional={"agent": ""}, void=True,
               shorthand_renames={"name": "agent"}),
    ToolSchema("clarification", renderers.render_clarification, category="agent",
               body_required=True, body_attrs=("question",)),

    # --- Read-only helpers ---
    ToolSchema("view_file", renderers.render_view_file, category="file",
               required=("path",)),
    ToolSchema("preview_url", renderers.render_preview_url, category="ui",
               required=("url",), streams=False),
]

DIRECTIVE_SCHEMAS: List[DirectiveSchema] = [
    DirectiveSchema("update_todo", renderers.render_todo, tag="update_todo"),
    DirectiveSchema("command_result", renderers.render_command_result),
]


class BlockRegistry:
    """Kind-to-schema lookup plus renderer dispatch that never raises.

    One instance is handed to the parser at construction; tests swap
    individual kinds with ``register``.
    """

    def __init__(self, config: Optional[RendererConfig] = None,
                 schemas: Optional[List[ToolSchema]] = None,
                 directives: Optional[List[DirectiveSchema]] = None):
        self.config = config or RendererConfig()
        self._schemas: List[ToolSchema] = list(schemas if schemas is not None else TOOL_SCHEMAS)
        self._directives: List[DirectiveSchema] = list(
            directives if directives is not None else DIRECTIVE_SCHEMAS)
        self._reindex()

    def _reindex(self) -> None:
        self._by_name: Dict[str, ToolSchema] = {s.name: s for s in self._schemas}
        self._by_tag: Dict[str, ToolSchema] = {s.shorthand_tag: s for s in self._schemas}
        self._directive_by_name: Dict[str, DirectiveSchema] = {d.name: d for d in self._directives}
        self._directive_by_tag: Dict[str, DirectiveSchema] = {
            d.tag: d for d in self._directives if d.tag
        }

    # ── Lookups ──

    @property
    def schemas(self) -> List[ToolSchema]:
        """Tool schemas in extraction priority order."""
        return list(self._schemas)

    def schema_for(self, kind: str) -> Optional[ToolSchema]:
        return self._by_name.get(kind)

    def schema_for_tag(self, tag: str) -> Optional[ToolSchema]:
        return self._by_tag.get(tag)

    def directive_for(self, name: str) -> Optional[DirectiveSchema]:
        return self._directive_by_name.get(name)

    def directive_for_tag(self, tag: str) -> Optional[DirectiveSchema]:
        return self._directive_by_tag.get(tag)

    def priority(self, kind: str) -> int:
        for i, schema in enumerate(self._schemas):
            if schema.name == kind:
                return i
        return len(self._schemas)

    def tag_names(self) -> List[str]:
        """Every tag name the quarantine layer re-opens."""
        names = list(REASONING_TAGS) + [GENERIC_TAG, SECTION_TAG]
        names += [d.tag for d in self._directives if d.tag]
        names += [s.shorthand_tag for s in self._schemas]
        return list(dict.fromkeys(names))

    def register(self, schema: ToolSchema, before: Optional[str] = None) -> None:
        """Add or replace a kind; ``before`` places it ahead of an existing kind."""
        self._schemas = [s for s in self._schemas if s.name != schema.name]
        index = len(self._schemas)
        if before is not None:
            for i, existing in enumerate(self._schemas):
                if existing.name == before:
                    index = i
                    break
        self._schemas.insert(index, schema)
        self._reindex()
        log.debug("registered kind %s at priority %d", schema.name, self.priority(schema.name))

    def register_directive(self, schema: DirectiveSchema) -> None:
        """Add or replace a directive kind (tests swap in doubles this way)."""
        self._directives = [d for d in self._directives if d.name != schema.name] + [schema]
        self._reindex()

    # ── Rendering (never raises) ──

    def _safe(self, label: str, fallback: str, fn, *args) -> str:
        try:
            return fn(*args)
        except Exception as e:
            log_exception(log, f"renderer failed for {label}", e)
            return renderers.render_raw_fallback(fallback, label)

    def render_tool(self, kind: str, attrs: Dict[str, str], body: str, complete: bool) -> str:
        schema = self.schema_for(kind)
        if schema is None:
            return self._safe(kind, body, renderers.render_generic_tool, kind, attrs, self.config)
        return self._safe(kind, body, schema.render, attrs, body, complete, self.config)

    def render_directive(self, name: str, payload: dict) -> str:
        schema = self.directive_for(name)
        fallback = str(payload.get("content", "")) if isinstance(payload, dict) else ""
        if schema is None:
            return renderers.render_raw_fallback(fallback, name)
        return self._safe(name, fallback, schema.render, payload, self.config)

    def render_reasoning(self, text: str, complete: bool) -> str:
        return self._safe("reasoning", text, renderers.render_reasoning, text, complete, self.config)

    def render_section(self, title: str) -> str:
        return self._safe("section", title, renderers.render_section, title)

    def render_summary(self, bullets: List[str]) -> str:
        return self._safe("summary", "\n".join(bullets), renderers.render_phase_summary, bullets)


def default_registry(config: Optional[RendererConfig] = None) -> BlockRegistry:
    """Registry populated with the built-in kinds."""
    return BlockRegistry(config=config)
