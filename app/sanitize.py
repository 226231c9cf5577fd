"""Allowlist HTML sanitization (bleach).

Two allowlists share one base:

- ``COMMENT_ALLOWLIST`` (public comments) = base + highlighting markup + GFM markup
- ``TRUSTED_ALLOWLIST`` (admin-authored bodies) = comment allowlist + author extras

Both are built once, here, by union of immutable values. Nothing mutates an
allowlist after import, so tiers cannot drift into each other.

Sanitizing must run on the *highlighted* HTML: the highlighter injects new
``pre``/``code``/``span`` markup, and only output that went through the filter
may reach the page. That is also why the highlighting tags and attributes are
part of the comment allowlist; without them the filter would strip the code
blocks it is meant to keep.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

import bleach
from bleach.css_sanitizer import CSSSanitizer


@dataclass(frozen=True, eq=False)
class Allowlist:
    tags: frozenset
    attributes: Mapping[str, frozenset]
    protocols: frozenset

    def union(self, other: "Allowlist") -> "Allowlist":
        attrs: dict[str, frozenset] = {}
        for source in (self.attributes, other.attributes):
            for tag, names in source.items():
                attrs[tag] = attrs.get(tag, frozenset()) | names
        return Allowlist(
            tags=self.tags | other.tags,
            attributes=MappingProxyType(attrs),
            protocols=self.protocols | other.protocols,
        )

    def allows_attribute(self, tag: str, name: str) -> bool:
        return name in self.attributes.get(tag, ()) or name in self.attributes.get("*", ())


def _allowlist(
    tags: Iterable[str],
    attributes: Mapping[str, Iterable[str]] | None = None,
    protocols: Iterable[str] = (),
) -> Allowlist:
    return Allowlist(
        tags=frozenset(tags),
        attributes=MappingProxyType({k: frozenset(v) for k, v in (attributes or {}).items()}),
        protocols=frozenset(protocols),
    )


BASE_ALLOWLIST = _allowlist(
    tags=[
        "a", "b", "blockquote", "br", "dd", "details", "div", "dl", "dt", "em",
        "h1", "h2", "h3", "h4", "h5", "h6", "hr", "i", "img", "ins", "kbd",
        "li", "ol", "p", "q", "s", "samp", "strike", "strong", "sub", "summary",
        "sup", "ul", "var",
    ],
    attributes={
        "a": ["href", "title"],
        "img": ["src", "alt", "title", "width", "height"],
        "ol": ["start"],
        "blockquote": ["cite"],
        "q": ["cite"],
        "ins": ["cite", "datetime"],
        "details": ["open"],
    },
    protocols=["http", "https", "mailto"],
)

# Markup injected by highlight.py (two themed Pygments renderings per block).
HIGHLIGHT_ALLOWLIST = _allowlist(
    tags=["pre", "code", "span"],
    attributes={
        "pre": ["class", "style", "tabindex"],
        "code": ["class", "style"],
        "span": ["class", "style"],
        "*": ["class"],
    },
)

# Tables, strikethrough and task-list checkboxes.
GFM_ALLOWLIST = _allowlist(
    tags=["table", "thead", "tbody", "tr", "th", "td", "del", "input"],
    attributes={
        "th": ["align", "style"],
        "td": ["align", "style"],
        "del": ["cite", "datetime"],
        "input": ["type", "checked", "disabled"],
    },
)

_AUTHOR_EXTRAS = _allowlist(
    tags=[
        "abbr", "audio", "cite", "figcaption", "figure", "mark", "picture",
        "small", "source", "u", "video",
    ],
    attributes={
        "abbr": ["title"],
        "audio": ["src", "controls"],
        "video": ["src", "controls", "poster", "width", "height"],
        "source": ["src", "type", "srcset"],
    },
)

COMMENT_ALLOWLIST = BASE_ALLOWLIST.union(HIGHLIGHT_ALLOWLIST).union(GFM_ALLOWLIST)
TRUSTED_ALLOWLIST = COMMENT_ALLOWLIST.union(_AUTHOR_EXTRAS)

_CSS_PROPERTIES = frozenset(
    [
        "background",
        "background-color",
        "border",
        "color",
        "font-style",
        "font-weight",
        "line-height",
        "text-align",
        "text-decoration",
    ]
)


def _attribute_filter(allowlist: Allowlist):
    def _allow(tag: str, name: str, value: str) -> bool:
        if not allowlist.allows_attribute(tag, name):
            return False
        if tag == "input" and name == "type":
            # task-list checkboxes only
            return (value or "").strip().lower() == "checkbox"
        return True

    return _allow


def sanitize(fragment: str, allowlist: Allowlist = COMMENT_ALLOWLIST) -> str:
    if not fragment:
        return ""
    return bleach.clean(
        fragment,
        tags=allowlist.tags,
        attributes=_attribute_filter(allowlist),
        protocols=allowlist.protocols,
        strip=True,
        strip_comments=True,
        css_sanitizer=CSSSanitizer(allowed_css_properties=_CSS_PROPERTIES),
    )
