"""Default narrative formatter: markdown -> HTML via markdown-it-py.

Raw HTML in narrative is never passed through (``html=False``); fenced
code is highlighted with Pygments.
"""

from typing import Optional

from markdown_it import MarkdownIt

from .renderers import highlight_code

_RENDERER: Optional[MarkdownIt] = None


def _highlight(code: str, lang: str, attrs: str) -> str:
    return highlight_code(code, language=lang or None)


def _build_renderer() -> MarkdownIt:
    global _RENDERER
    if _RENDERER is None:
        renderer = MarkdownIt(
            "commonmark",
            {"html": False, "breaks": True, "highlight": _highlight},
        )
        renderer.enable("table")
        renderer.enable("strikethrough")
        _RENDERER = renderer
    return _RENDERER


def render_narrative(text: str) -> str:
    """Render one narrative span as a response card."""
    body = _build_renderer().render(text or "")
    return f'<div class="response-card markdown-content">{body}</div>'
