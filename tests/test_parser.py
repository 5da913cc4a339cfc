"""End-to-end tests for StreamRenderer.parse."""

import logging
import sys
import os

import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tagstream.config import RendererConfig
from tagstream.models import BlockKind
from tagstream.parser import StreamRenderer

RESPONSE = (
    "Let me look around first.\n"
    "## PHASE 1: Plan\n"
    '<thinking>Check the layout.</thinking>I\'ll list files.'
    '<tool name="list_directory" path="./" recursive="true"></tool>\n'
    '<tool name="view_file" path="src/index.js"></tool>\n'
    "## PHASE 1: Plan (cont.)\n"
    "Plan is ready:\n"
    "<update_todo>\n- [x] explore\n- [ ] build\n</update_todo>\n"
    "## PHASE 2: Build\n"
    '<create_file path="src/app.js">console.log("hi");\n</create_file>\n'
    "<run_command>npm test</run_command>\n"
    "Everything is in place."
)

TOOL_THEN_HEADER = (
    "## PHASE 1: Plan\n"
    '<tool name="list_directory" path="."></tool>\n'
    "## PHASE 2: Build\n"
    "<run_command>npm test</run_command>\n"
)

TOOL_THEN_TODO = (
    "Intro.\n"
    "<run_command>ls</run_command>\n"
    "<update_todo>\n- [ ] build\n</update_todo>"
)


def plain(text):
    return f"<p>{text}</p>"


def shape(state):
    return [(g.title, [n.kind for n in state.steps(g)]) for g in state.groups]


def stream(renderer, text, step=7):
    result = renderer.parse("")
    for end in range(step, len(text) + step, step):
        result = renderer.parse(text[:end])
    return result


# ============================================================
# Single parse
# ============================================================

class TestParse:
    def test_units_and_phases(self):
        result = StreamRenderer(narrative_renderer=plain).parse(RESPONSE)
        assert result.error is None
        assert [p.title for p in result.phases] == ["Plan", "Build"]
        assert result.phases[0].closed and not result.phases[1].closed
        assert result.blocks[0].text == "Let me look around first."
        assert result.units[0].html == "<p>Let me look around first.</p>"
        tool_names = [b.name for b in result.blocks if b.kind == BlockKind.TOOL]
        assert tool_names == ["list_directory", "view_file", "create_file", "run_command"]

    def test_outline_groups(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        result = renderer.parse(RESPONSE)
        groups = result.outline.groups
        assert [g.title for g in groups] == ["Plan", "Build"]
        assert groups[0].collapsed
        assert groups[0].summary[:3] == [
            "Let me look around first.",
            "Analyzed directory structure",
            "Read 1 files: index.js",
        ]

    def test_default_narrative_renderer_uses_markdown(self):
        result = StreamRenderer().parse("Some **bold** text and <b>tags</b>.")
        html = result.units[0].html
        assert "<strong>bold</strong>" in html
        assert "<b>" not in html
        assert "&lt;b&gt;" in html

    def test_sanitizer_runs_first(self):
        result = StreamRenderer(narrative_renderer=plain).parse("Step Id: 4\nHello")
        assert [b.text for b in result.blocks] == ["Hello"]

    def test_sanitizer_can_be_disabled(self):
        config = RendererConfig(sanitize=False)
        result = StreamRenderer(config=config, narrative_renderer=plain).parse("Step Id: 4\nHello")
        assert result.blocks[0].text == "Step Id: 4\nHello"

    def test_idempotent_structure(self):
        first = StreamRenderer(narrative_renderer=plain).parse(RESPONSE)
        second = StreamRenderer(narrative_renderer=plain).parse(RESPONSE)
        assert first.blocks == second.blocks
        assert first.outline.to_dict() == second.outline.to_dict()

    def test_failure_is_contained(self):
        def broken(text):
            raise RuntimeError("sanitizer bug")

        result = StreamRenderer(sanitizer=broken).parse("a <b> c")
        assert result.error == "RuntimeError: sanitizer bug"
        assert len(result.units) == 1
        assert "a &lt;b&gt; c" in result.units[0].html

    def test_narrative_failure_falls_back(self):
        def broken(text):
            raise ValueError("formatter bug")

        result = StreamRenderer(narrative_renderer=broken).parse("x < y")
        assert result.error is None
        assert "x &lt; y" in result.units[0].html

    def test_header_on_last_line_opens_phase(self):
        result = StreamRenderer(narrative_renderer=plain).parse(
            "## PHASE 1: Plan\nLooked around.\n## PHASE 2: Build\n")
        assert [p.title for p in result.phases] == ["Plan", "Build"]
        assert [b.text for b in result.blocks if b.kind == BlockKind.NARRATIVE] == ["Looked around."]

    def test_unfinished_header_is_pending(self):
        result = StreamRenderer(narrative_renderer=plain).parse("## PHASE 1: Plan\nLooked around.\n## PHASE 2: Bu")
        assert [p.title for p in result.phases] == ["Plan"]
        assert result.pending == "## PHASE 2: Bu"
        assert result.to_dict()["pending"] == "## PHASE 2: Bu"

    def test_internal_log_buffer_is_flagged_once(self, caplog):
        renderer = StreamRenderer(narrative_renderer=plain)
        with caplog.at_level(logging.WARNING, logger="tagstream"):
            renderer.parse("Step Id: 3\nCurrent Active File: a.js\nHello")
            renderer.parse("Step Id: 3\nCurrent Active File: a.js\nHello there")
        warnings = [r for r in caplog.records if "leaked internal log" in r.getMessage()]
        assert len(warnings) == 1

    def test_to_dict(self):
        data = StreamRenderer(narrative_renderer=plain).parse(RESPONSE).to_dict()
        assert data["phases"][0]["title"] == "Plan"
        assert data["outline"]["groups"][1]["title"] == "Build"


# ============================================================
# Streaming
# ============================================================

class TestStreaming:
    @pytest.mark.parametrize("text", [RESPONSE, TOOL_THEN_HEADER, TOOL_THEN_TODO])
    @pytest.mark.parametrize("step", [1, 7])
    def test_streamed_outline_matches_one_shot(self, text, step):
        streamed = StreamRenderer(narrative_renderer=plain)
        stream(streamed, text, step)
        one_shot = StreamRenderer(narrative_renderer=plain)
        one_shot.parse(text)
        assert shape(streamed.state) == shape(one_shot.state)

    def test_no_stray_header_step(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        stream(renderer, TOOL_THEN_HEADER, 1)
        assert shape(renderer.state) == [("Plan", ["tool"]), ("Build", ["tool"])]

    def test_no_stray_directive_markup(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        stream(renderer, TOOL_THEN_TODO, 1)
        assert shape(renderer.state) == [("Initialization", ["narrative", "tool", "directive"])]
        contents = [n.content for n in renderer.state.nodes.values()]
        assert not any("update_todo&gt;" in c or "<update_todo>" in c for c in contents)

    def test_in_progress_file_card(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        result = renderer.parse('Writing.\n<create_file path="src/app.js">console.lo')
        last = result.units[-1]
        assert not last.block.complete
        assert "Creating app.js..." in last.html

    def test_injected_node_survives_streaming(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        prefix = "## PHASE 1: Plan\nFirst"
        full = prefix + "\n<thinking>ok</thinking>Then more"
        renderer.parse(prefix)
        user = renderer.state.inject("user", "<p>please hurry</p>", role="user")
        for end in range(len(prefix), len(full) + 1, 3):
            renderer.parse(full[:end])
        renderer.parse(full)
        assert len(renderer.state.groups) == 1
        steps = renderer.state.steps(renderer.state.groups[0])
        assert user in steps
        assert steps.index(user) == 1

    def test_end_stream_and_reset(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        renderer.parse("## PHASE 1: Plan\nAll done.")
        state = renderer.end_stream()
        assert state.ended
        assert state.groups[0].collapsed
        assert state.groups[0].summary == ["All done."]
        renderer.reset()
        assert renderer.state.groups == []

    def test_end_stream_releases_pending_header(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        renderer.parse("## PHASE 1: Plan\nDone.\n## PHASE 2: Ship")
        assert [g.title for g in renderer.state.groups] == ["Plan"]
        state = renderer.end_stream()
        assert [g.title for g in state.groups] == ["Plan", "Ship"]
        assert all(g.collapsed for g in state.groups)
        assert renderer.latest.pending == ""

    def test_end_stream_releases_unclosed_directive_as_text(self):
        renderer = StreamRenderer(narrative_renderer=plain)
        renderer.parse("Working.\n<update_todo>\n- [ ] a")
        renderer.end_stream()
        assert "update_todo never closed" in renderer.latest.rejected
