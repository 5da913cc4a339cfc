"""Tests for the quarantine layer and the tokenizer."""

import sys
import os

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tagstream.quarantine import escape_html, unescape_html, normalize_tags, quarantine
from tagstream.lexer import TokenType, tokenize, parse_attributes
from tagstream.registry import default_registry

NAMES = default_registry().tag_names()


# ============================================================
# Escaping
# ============================================================

class TestEscaping:
    def test_escapes_five_characters(self):
        assert escape_html("<a href=\"x\">'&'</a>") == (
            "&lt;a href=&quot;x&quot;&gt;&#039;&amp;&#039;&lt;/a&gt;"
        )

    def test_unescape_is_inverse(self):
        raw = "if a < b && c > \"d\" then 'e' &lt;already&gt;"
        assert unescape_html(escape_html(raw)) == raw

    def test_empty(self):
        assert escape_html("") == ""
        assert unescape_html("") == ""


# ============================================================
# Tag normalization
# ============================================================

class TestNormalizeTags:
    def test_reopens_allowlisted_tag_with_quotes(self):
        safe = quarantine('<tool name="create_file" path="a.js">x</tool>', NAMES)
        assert safe == '<tool name="create_file" path="a.js">x</tool>'

    def test_unknown_tags_stay_escaped(self):
        safe = quarantine("<div class=\"x\">hi</div>", NAMES)
        assert "<" not in safe
        assert "&lt;div" in safe

    def test_pre_escaped_tag_is_recognised(self):
        safe = normalize_tags("&amp;lt;run_command&amp;gt;ls&amp;lt;/run_command&amp;gt;", NAMES)
        assert safe == "<run_command>ls</run_command>"

    def test_prefix_name_is_not_a_tag(self):
        # "toolbox" starts with "tool" but is not an allow-listed name
        safe = quarantine("<toolbox>x</toolbox>", NAMES)
        assert "<toolbox" not in safe

    def test_text_inside_tag_body_stays_escaped(self):
        safe = quarantine('<create_file path="a.html"><div>&</div></create_file>', NAMES)
        assert "&lt;div&gt;&amp;&lt;/div&gt;" in safe

    def test_truncated_tag_at_end_is_reopened(self):
        safe = quarantine('Working <tool name="crea', NAMES)
        assert safe.endswith('<tool name="crea')

    def test_truncated_prefix_of_known_name(self):
        assert quarantine("text <thi", NAMES).endswith("<thi")

    def test_trailing_comparison_is_not_reopened(self):
        assert quarantine("if a < b", NAMES) == "if a &lt; b"
        assert quarantine("x <y", NAMES) == "x &lt;y"


# ============================================================
# Tokenizer
# ============================================================

class TestTokenize:
    def test_token_types(self):
        text = quarantine('a<tool name="x" k="v">b</tool><preview_url url="u"/>c', NAMES)
        types = [t.type for t in tokenize(text, NAMES)]
        assert types == [
            TokenType.TEXT, TokenType.OPEN, TokenType.TEXT, TokenType.CLOSE,
            TokenType.SELF_CLOSING, TokenType.TEXT,
        ]

    def test_open_tag_attributes(self):
        tokens = tokenize('<tool name="list_directory" path="./" recursive="true">', NAMES)
        assert tokens[0].name == "tool"
        assert tokens[0].attrs == {"name": "list_directory", "path": "./", "recursive": "true"}

    def test_tag_names_are_case_insensitive(self):
        tokens = tokenize("<THINK>x</Think>", NAMES)
        assert [t.name for t in tokens if t.is_tag] == ["think", "think"]

    def test_truncated_tail(self):
        tokens = tokenize('done <tool name="cr', NAMES)
        assert tokens[-1].type == TokenType.TRUNCATED
        assert tokens[-1].name == "tool"
        assert tokens[0].raw == "done "

    def test_parse_attributes_quote_styles(self):
        attrs = parse_attributes(""" a="1" B='2' c=3 a="dup" """)
        assert attrs == {"a": "1", "b": "2", "c": "3"}

    def test_parse_attributes_unescapes_values(self):
        assert parse_attributes('path="a&amp;b.txt"') == {"path": "a&b.txt"}
