from __future__ import annotations

import markdown

# GFM-style parsing on top of python-markdown.
# Raw HTML in the source is kept as-is here; making it safe is the sanitizer's job.

_EXTENSIONS = [
    "fenced_code",
    "tables",
    "sane_lists",
    "pymdownx.tilde",
    "pymdownx.magiclink",
    "pymdownx.tasklist",
]

_EXTENSION_CONFIGS = {
    # ~~x~~ only; single tildes stay literal like on GitHub
    "pymdownx.tilde": {"subscript": False},
    "pymdownx.tasklist": {"custom_checkbox": False, "clickable_checkbox": False},
}


def build_markdown() -> markdown.Markdown:
    # Markdown instances keep per-document state (html stash, references),
    # so every conversion gets its own.
    return markdown.Markdown(
        extensions=_EXTENSIONS,
        extension_configs=_EXTENSION_CONFIGS,
        output_format="html",
    )


def to_html(source: str) -> str:
    """Parse markdown into python-markdown's element tree and serialize it.

    Fenced code blocks come out as ``<pre><code class="language-xx">`` with
    escaped text, which is what ``highlight.highlight_code_blocks`` rewrites.
    """
    if not (source or "").strip():
        return ""
    return build_markdown().convert(source)
