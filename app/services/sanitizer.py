import re

from bs4 import BeautifulSoup

# Matches WordPress shortcode tags such as [et_pb_section ...] or [/et_pb_section]
_SHORTCODE_RE = re.compile(r"\[/?[a-z_\-]+(?:\s[^\]]*?)?\]", re.IGNORECASE)

# Character references that survived one round of decoding (double-encoded
# CMS output such as "&amp;hellip;")
_ENTITY_RE = re.compile(r"&(?:#\d+|#x[0-9a-f]+|[a-z][a-z0-9]*);", re.IGNORECASE)

# WordPress appends "[…]" / "[...]" to auto-generated excerpts
_READ_MORE_RE = re.compile(r"\s*\[(?:…|\.\.\.)\]\s*$")

_WHITESPACE_RE = re.compile(r"\s+")

DESCRIPTION_MAX_LENGTH = 160


def strip_shortcodes(html: str) -> str:
    """Remove WordPress shortcode tags (e.g. ``[et_pb_section ...]``) from ``html``.

    Some page builders (Divi, WPBakery, …) leave shortcode markup in
    ``excerpt.rendered`` when the REST API bypasses the builder's rendering
    pipeline.
    """
    return _SHORTCODE_RE.sub("", html)


def html_to_text(html: str) -> str:
    """Return the plain text of an HTML fragment with whitespace collapsed.

    Tags are dropped and character references decoded by the lxml parser; any
    reference still present afterwards was double-encoded upstream and is
    replaced by a space.
    """
    if not html or not html.strip():
        return ""
    text = BeautifulSoup(strip_shortcodes(html), "lxml").get_text()
    text = _ENTITY_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def excerpt_to_description(html: str, max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    """Turn a rendered excerpt into a meta description of at most *max_length* chars."""
    text = _READ_MORE_RE.sub("", html_to_text(html))
    return text[:max_length].strip()
