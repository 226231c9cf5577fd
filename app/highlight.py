"""Pygments highlighting for fenced code blocks.

Every code block is rendered twice, once per color theme, and both renderings
sit side by side in the fragment::

    <div class="code-block">
      <div class="highlight highlight-light"><pre><span></span><code>
        <span class="light-kd">const</span> ...</code></pre></div>
      <div class="highlight highlight-dark"><pre>...</pre></div>
    </div>

Token classes carry a per-theme prefix (``light-``/``dark-``) so the two
stylesheets never collide; ``stylesheet()`` also emits the rules that show only
one rendering at a time.
"""
from __future__ import annotations

import html
import re
from functools import lru_cache

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_by_name
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from app_config import content_settings


THEMES = ("light", "dark")

# Shape produced by python-markdown for fenced and indented code.
_CODE_BLOCK_RE = re.compile(
    r"<pre(?:\s[^>]*)?>\s*<code(?P<attrs>\s[^>]*)?>(?P<code>.*?)</code>\s*</pre>",
    re.DOTALL | re.IGNORECASE,
)
_LANG_RE = re.compile(r"""class\s*=\s*["'][^"']*?\blanguage-(?P<lang>[\w+#.-]+)""", re.IGNORECASE)

_TOGGLE_CSS = """
.code-block .highlight-dark { display: none; }
.dark .code-block .highlight-light { display: none; }
.dark .code-block .highlight-dark { display: block; }
@media (prefers-color-scheme: dark) {
  :root:not(.light) .code-block .highlight-light { display: none; }
  :root:not(.light) .code-block .highlight-dark { display: block; }
}
"""


def _style_name(theme: str) -> str:
    if theme == "dark":
        name = content_settings.HIGHLIGHT_DARK_STYLE
    else:
        name = content_settings.HIGHLIGHT_LIGHT_STYLE
    try:
        get_style_by_name(name)
    except ClassNotFound:
        return "default"
    return name


@lru_cache(maxsize=8)
def _formatter(theme: str, style: str) -> HtmlFormatter:
    return HtmlFormatter(
        style=style,
        cssclass=f"highlight highlight-{theme}",
        classprefix=f"{theme}-",
        wrapcode=True,
    )


def _lexer(lang: str | None):
    if lang:
        try:
            return get_lexer_by_name(lang)
        except ClassNotFound:
            pass
    return TextLexer()


def highlight_block(code: str, lang: str | None = None) -> str:
    """Render one code block as the two-theme ``div.code-block``."""
    lexer = _lexer(lang)
    parts = [highlight(code, lexer, _formatter(theme, _style_name(theme))) for theme in THEMES]
    return '<div class="code-block">' + "".join(parts) + "</div>"


def _replace(m: re.Match) -> str:
    attrs = m.group("attrs") or ""
    lang_m = _LANG_RE.search(attrs)
    lang = lang_m.group("lang") if lang_m else None
    code = html.unescape(m.group("code"))
    return highlight_block(code, lang)


def highlight_code_blocks(fragment: str) -> str:
    if not fragment:
        return fragment
    return _CODE_BLOCK_RE.sub(_replace, fragment)


def stylesheet() -> str:
    chunks = []
    for theme in THEMES:
        chunks.append(_formatter(theme, _style_name(theme)).get_style_defs(f".highlight-{theme}"))
    chunks.append(_TOGGLE_CSS)
    return "\n".join(chunks)
