"""Text-level extraction and merging of ``<head>`` meta tags.

The pages handed to this module come from a known, template-controlled static
build, so tags are located with one anchored regular expression per tag kind
rather than a full HTML parser.  The rules are:

* A tag kind whose desired value is ``None`` is left alone.
* A tag that already exists is rewritten in place (its first occurrence).
  Always-normalised kinds (title, canonical, ``og:url``, ``twitter:url``) also
  lose any later duplicate, so exactly one survives.
* A tag that does not exist is queued and inserted, together with the resource
  hints and the JSON-LD block, immediately before the last ``</head>``.
* Every interpolated value is attribute-escaped.

Without a ``</head>`` the document is returned unchanged.
"""

import html as html_lib
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from app.models.meta import MetaTagSet
from app.services.errors import TemplateError

logger = logging.getLogger(__name__)

_HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.IGNORECASE)

STRUCTURED_DATA_ID = "structured-data"

_STRUCTURED_DATA_RE = re.compile(
    r"<script\b[^>]*\bid\s*=\s*[\"']" + STRUCTURED_DATA_ID + r"[\"'][^>]*>.*?</script\s*>",
    re.IGNORECASE | re.DOTALL,
)

_INDENT = "    "


def escape_attr(value: str) -> str:
    """Escape ``& < > " '`` so *value* is safe inside a double-quoted attribute."""
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )


def _attr_value_re(attr: str) -> re.Pattern:
    return re.compile(
        r"(?<![\w-])" + attr + r"\s*=\s*(?:\"([^\"]*)\"|'([^']*)')",
        re.IGNORECASE,
    )


_CONTENT_RE = _attr_value_re("content")
_HREF_RE = _attr_value_re("href")


@dataclass(frozen=True)
class TagPresence:
    """Whether a tag kind exists in a document and what it currently holds."""

    present: bool
    content: str = ""

    @property
    def non_empty(self) -> bool:
        return self.present and bool(self.content.strip())


@dataclass(frozen=True)
class TagSpec:
    """One recognised tag kind and how to find and render it."""

    key: str
    element: str  # "meta", "link" or "title"
    attr: str = "name"  # attribute that carries *key* when rendering
    normalized: bool = False

    @property
    def pattern(self) -> re.Pattern:
        key = re.escape(self.key)
        if self.element == "title":
            return re.compile(r"<title\b[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
        if self.element == "link":
            return re.compile(
                r"<link\b(?=[^>]*(?<![\w-])rel\s*=\s*[\"']" + key + r"[\"'])[^>]*>",
                re.IGNORECASE,
            )
        # Some templates put twitter:* under property= and og:* under name=
        return re.compile(
            r"<meta\b(?=[^>]*(?<![\w-])(?:name|property)\s*=\s*[\"']" + key + r"[\"'])[^>]*>",
            re.IGNORECASE,
        )

    def read(self, match: re.Match) -> str:
        """Return the decoded text or attribute value held by a matched tag."""
        if self.element == "title":
            return html_lib.unescape(match.group(1))
        value_re = _HREF_RE if self.element == "link" else _CONTENT_RE
        found = value_re.search(match.group(0))
        if not found:
            return ""
        raw = found.group(1) if found.group(1) is not None else (found.group(2) or "")
        return html_lib.unescape(raw)

    def render(self, value: str) -> str:
        safe = escape_attr(value)
        if self.element == "title":
            return f"<title>{safe}</title>"
        if self.element == "link":
            return f'<link rel="{self.key}" href="{safe}">'
        return f'<meta {self.attr}="{self.key}" content="{safe}">'


TITLE = TagSpec("title", "title", normalized=True)
CANONICAL = TagSpec("canonical", "link", attr="rel", normalized=True)
DESCRIPTION = TagSpec("description", "meta")
AUTHOR = TagSpec("author", "meta")
PUBLISHER = TagSpec("publisher", "meta")
ROBOTS = TagSpec("robots", "meta")
GOOGLEBOT = TagSpec("googlebot", "meta")


def _og(key: str, normalized: bool = False) -> TagSpec:
    return TagSpec(key, "meta", attr="property", normalized=normalized)


def _twitter(key: str, normalized: bool = False) -> TagSpec:
    return TagSpec(key, "meta", attr="name", normalized=normalized)


OG_IMAGE = _og("og:image")

# Fixed insertion order; also the order tags are written in a fresh document.
_TAG_ORDER: Tuple[Tuple[TagSpec, Any], ...] = (
    (TITLE, lambda d: d.title),
    (CANONICAL, lambda d: d.canonical),
    (DESCRIPTION, lambda d: d.description),
    (AUTHOR, lambda d: d.author),
    (PUBLISHER, lambda d: d.publisher),
    (ROBOTS, lambda d: d.robots),
    (GOOGLEBOT, lambda d: d.googlebot),
    (_og("og:type"), lambda d: d.og.type),
    (_og("og:url", normalized=True), lambda d: d.og.url),
    (_og("og:title"), lambda d: d.og.title),
    (_og("og:description"), lambda d: d.og.description),
    (OG_IMAGE, lambda d: d.og.image),
    (_og("og:image:width"), lambda d: d.og.image_width),
    (_og("og:image:height"), lambda d: d.og.image_height),
    (_og("og:image:alt"), lambda d: d.og.image_alt),
    (_og("og:site_name"), lambda d: d.og.site_name),
    (_og("og:locale"), lambda d: d.og.locale),
    (_og("article:published_time"), lambda d: d.og.published_time),
    (_og("article:modified_time"), lambda d: d.og.modified_time),
    (_twitter("twitter:card"), lambda d: d.twitter.card),
    (_twitter("twitter:site"), lambda d: d.twitter.site),
    (_twitter("twitter:url", normalized=True), lambda d: d.twitter.url),
    (_twitter("twitter:title"), lambda d: d.twitter.title),
    (_twitter("twitter:description"), lambda d: d.twitter.description),
    (_twitter("twitter:image"), lambda d: d.twitter.image),
    (_twitter("twitter:image:alt"), lambda d: d.twitter.image_alt),
)

TAG_SPECS: Dict[str, TagSpec] = {spec.key: spec for spec, _ in _TAG_ORDER}


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def _head_close(html: str) -> int:
    """Index of the ``</head>`` closest to the end of *html*."""
    matches = list(_HEAD_CLOSE_RE.finditer(html))
    if not matches:
        raise TemplateError("Document has no </head>")
    return matches[-1].start()


def _head_of(html: str) -> str:
    try:
        return html[: _head_close(html)]
    except TemplateError:
        return html


def read_tag(html: str, key: str) -> TagPresence:
    """Return the presence and content of the first *key* tag in the head."""
    spec = TAG_SPECS[key]
    match = spec.pattern.search(_head_of(html))
    if match is None:
        return TagPresence(present=False)
    return TagPresence(present=True, content=spec.read(match))


def read_title(html: str) -> str:
    """Return the trimmed ``<title>`` text, or ``""`` when there is none."""
    return read_tag(html, "title").content.strip()


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------

def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _rewrite_existing(head: str, spec: TagSpec, rendered: str) -> Tuple[str, bool]:
    matches = list(spec.pattern.finditer(head))
    if not matches:
        return head, False
    if not spec.normalized:
        matches = matches[:1]
    # Walk backwards so earlier offsets stay valid; only the first is rewritten
    for index in range(len(matches) - 1, -1, -1):
        match = matches[index]
        replacement = rendered if index == 0 else ""
        head = head[: match.start()] + replacement + head[match.end():]
    return head, True


def _has_hint(head: str, rel: str, origin: str) -> bool:
    link_re = TagSpec(rel, "link").pattern
    for match in link_re.finditer(head):
        found = _HREF_RE.search(match.group(0))
        if found and (found.group(1) or found.group(2) or "").rstrip("/") == origin:
            return True
    return False


def render_structured_data(data: Dict[str, Any]) -> str:
    """Serialise *data* as a JSON-LD script block that cannot close itself early."""
    payload = json.dumps(data, ensure_ascii=False, indent=2)
    payload = payload.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
    return (
        f'<script type="application/ld+json" id="{STRUCTURED_DATA_ID}">\n'
        f"{payload}\n"
        "</script>"
    )


def _merge(html: str, desired: MetaTagSet) -> str:
    close = _head_close(html)
    head, rest = html[:close], html[close:]

    hints: List[str] = []
    for origin in desired.resource_hints:
        origin = origin.rstrip("/")
        for rel in ("dns-prefetch", "preconnect"):
            if not _has_hint(head, rel, origin):
                hints.append(f'<link rel="{rel}" href="{escape_attr(origin)}">')

    insertions: List[str] = []
    for spec, getter in _TAG_ORDER:
        value = _as_text(getter(desired))
        if value is None:
            continue
        rendered = spec.render(value)
        head, replaced = _rewrite_existing(head, spec, rendered)
        if not replaced:
            insertions.append(rendered)

    if desired.structured_data is not None:
        block = render_structured_data(desired.structured_data)
        if _STRUCTURED_DATA_RE.search(head):
            head = _STRUCTURED_DATA_RE.sub(lambda _m: block, head, count=1)
        else:
            insertions.append(block)

    added = hints + insertions
    if not added:
        return head + rest
    return head + "".join(f"{_INDENT}{chunk}\n" for chunk in added) + rest


def merge_head(html: str, desired: MetaTagSet) -> str:
    """Rewrite the head of *html* so it reflects *desired*.

    Fails soft: a document without ``</head>`` is returned unchanged.
    """
    try:
        return _merge(html, desired)
    except TemplateError as exc:
        logger.warning("Head merge skipped: %s", exc)
        return html


# ---------------------------------------------------------------------------
# Robots and body anchors
# ---------------------------------------------------------------------------

def _set_value(tag: str, value_re: re.Pattern, attr: str, value: str) -> str:
    """Return *tag* with its *attr* attribute set to the escaped *value*."""
    rendered = f'{attr}="{escape_attr(value)}"'
    if value_re.search(tag):
        return value_re.sub(lambda _m: rendered, tag, count=1)
    closing = "/>" if tag.rstrip().endswith("/>") else ">"
    body = tag.rstrip()[: -len(closing)].rstrip()
    return f"{body} {rendered}{' ' if closing == '/>' else ''}{closing}"


def apply_noindex(html: str) -> str:
    """Flip ``robots``/``googlebot`` from ``index…`` to ``noindex…``.

    A document with no robots tag gets ``noindex, follow`` inserted.  Without a
    ``</head>`` the document is returned unchanged.
    """
    try:
        close = _head_close(html)
    except TemplateError as exc:
        logger.warning("Noindex skipped: %s", exc)
        return html
    head, rest = html[:close], html[close:]

    robots_found = False
    for spec in (ROBOTS, GOOGLEBOT):
        match = spec.pattern.search(head)
        if match is None:
            continue
        robots_found = robots_found or spec is ROBOTS
        content = spec.read(match).strip()
        if not content.lower().startswith("index"):
            continue
        updated = _set_value(match.group(0), _CONTENT_RE, "content", "no" + content)
        head = head[: match.start()] + updated + head[match.end():]

    if not robots_found:
        head += f"{_INDENT}{ROBOTS.render('noindex, follow')}\n"
    return head + rest


def _element_re(tag: str, element_id: str) -> re.Pattern:
    return re.compile(
        r"(<" + tag + r"\b[^>]*(?<![\w-])id\s*=\s*[\"']" + re.escape(element_id) + r"[\"'][^>]*>)"
        r"[^<]*"
        r"(</" + tag + r"\s*>)",
        re.IGNORECASE,
    )


def replace_element_text(html: str, tag: str, element_id: str, text: str) -> str:
    """Replace the text of every ``<tag id="element_id">`` that holds only text."""
    safe = escape_attr(text)
    return _element_re(tag, element_id).sub(lambda m: m.group(1) + safe + m.group(2), html)


def set_element_attribute(html: str, tag: str, element_id: str, attr: str, value: str) -> str:
    """Set *attr* on the first ``<tag id="element_id">`` opening tag."""
    opening_re = re.compile(
        r"<" + tag + r"\b[^>]*(?<![\w-])id\s*=\s*[\"']" + re.escape(element_id) + r"[\"'][^>]*>",
        re.IGNORECASE,
    )
    match = opening_re.search(html)
    if match is None:
        return html
    updated = _set_value(match.group(0), _attr_value_re(attr), attr, value)
    return html[: match.start()] + updated + html[match.end():]
