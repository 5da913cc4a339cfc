"""Tests for the block registry and card renderers."""

import sys
import os

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tagstream.config import RendererConfig
from tagstream.extractor import Extractor
from tagstream.quarantine import quarantine
from tagstream.registry import BlockRegistry, DirectiveSchema, ToolSchema, TOOL_SCHEMAS, default_registry
from tagstream import renderers


# ============================================================
# Schema table
# ============================================================

class TestSchemas:
    def test_priority_order(self):
        names = [s.name for s in TOOL_SCHEMAS]
        assert names[:10] == [
            "create_file", "update_file", "run_command", "delete_file", "search_project",
            "get_problems", "delegate_task", "list_directory", "agent", "clarification",
        ]

    def test_schema_lookup(self):
        registry = default_registry()
        schema = registry.schema_for("create_file")
        assert schema.required == ("path",)
        assert schema.shorthand_tag == "create_file"
        assert registry.schema_for("nope") is None

    def test_missing_and_defaults(self):
        schema = default_registry().schema_for("list_directory")
        assert schema.missing({}) == []
        assert schema.with_defaults({"path": "src"}) == {"path": "src", "recursive": "false"}
        assert default_registry().schema_for("delete_file").missing({"path": " "}) == ["path"]

    def test_tag_names_cover_everything(self):
        names = default_registry().tag_names()
        for expected in ("thinking", "think", "tool", "h2", "update_todo", "create_file", "agent"):
            assert expected in names

    def test_register_before(self):
        registry = default_registry()
        registry.register(ToolSchema("open_browser", renderers.render_preview_url), before="create_file")
        assert registry.priority("open_browser") == 0
        assert "open_browser" in registry.tag_names()


# ============================================================
# Rendering
# ============================================================

def _boom(attrs, body, complete, config):
    raise RuntimeError("renderer exploded")


class TestRendering:
    def test_renderer_failure_falls_back_to_raw(self):
        registry = default_registry()
        registry.register(ToolSchema("create_file", _boom, required=("path",), body_required=True))
        html = registry.render_tool("create_file", {"path": "a"}, "<b>x</b>", True)
        assert "raw-fallback" in html
        assert "&lt;b&gt;x&lt;/b&gt;" in html

    def test_test_double_is_used_by_extractor(self):
        registry = BlockRegistry(schemas=[
            ToolSchema("run_command", lambda a, b, c, cfg: f"[cmd {b}]", body_required=True),
        ])
        result = Extractor(registry).extract(quarantine("<run_command>make</run_command>", registry.tag_names()))
        assert list(result.placeholders.values()) == ["[cmd make]"]

    def test_directive_double_is_used_by_extractor(self):
        registry = default_registry()
        registry.register_directive(DirectiveSchema(
            "update_todo", lambda payload, cfg: f"[todo {len(payload['items'])}]", tag="update_todo"))
        assert registry.directive_for("update_todo").tag == "update_todo"
        raw = "<update_todo>\n- [ ] a\n- [x] b\n</update_todo>"
        result = Extractor(registry).extract(quarantine(raw, registry.tag_names()))
        assert list(result.placeholders.values()) == ["[todo 2]"]

    def test_unknown_directive_renders_raw(self):
        html = default_registry().render_directive("no_such_directive", {"content": "<x>"})
        assert "&lt;x&gt;" in html

    def test_unknown_language_falls_back(self):
        assert renderers.highlight_code("<x>", language="no-such-lang") == "&lt;x&gt;"

    def test_highlight_disabled(self):
        assert renderers.highlight_code("a<b", language="python", enabled=False) == "a&lt;b"

    def test_file_card_escapes_and_encodes(self):
        html = renderers.render_create_file({"path": "a b.js"}, "let x = '<y>';", True, RendererConfig())
        assert 'data-path="a%20b.js"' in html
        assert "<y>" not in html

    def test_in_progress_file_card(self):
        html = renderers.render_update_file({"path": "src/app.py"}, "a\nb", False, RendererConfig())
        assert "Updating app.py..." in html
        assert "2 lines so far" in html

    def test_run_command_card(self):
        html = renderers.render_run_command({}, "npm test", True, RendererConfig())
        assert 'data-cmd="npm%20test"' in html

    def test_reasoning_summary(self):
        config = RendererConfig(reasoning_summary_chars=5)
        html = renderers.render_reasoning("abcdefgh\nmore", True, config)
        assert "abcde..." in html

    def test_todo(self):
        html = renderers.render_todo({"items": [{"title": "a", "done": True}]}, RendererConfig())
        assert "checked" in html

    def test_phase_summary(self):
        assert renderers.render_phase_summary([]) == ""
        assert "<li>Created: a.py</li>" in renderers.render_phase_summary(["Created: a.py"])

    def test_language_for_path(self):
        assert renderers.language_for_path("x.unknownext") == "text"
        assert renderers.language_for_path("main.py") == "python"
