"""Normalisation helpers: slug validation, canonical URLs, page titles, image URLs."""

import re
from typing import Optional
from urllib.parse import urlparse

from app.services.errors import ValidationError

_SLUG_RE = re.compile(r"^[A-Za-z0-9_-]+$")

TITLE_SEPARATOR = " | "

# Cloudinary transformation applied to social images
_CLOUDINARY_TRANSFORM = "f_auto,q_auto,w_1280"


def validate_slug(slug: str) -> str:
    """Return *slug* unchanged, or raise :class:`ValidationError` if it is malformed."""
    if not slug or not _SLUG_RE.match(slug):
        raise ValidationError(f"Invalid slug format: {slug!r}")
    return slug


def clean_slug(slug: Optional[str]) -> Optional[str]:
    """Return *slug* when it is valid, otherwise ``None`` (invalid input counts as absent)."""
    if slug is None:
        return None
    try:
        return validate_slug(slug)
    except ValidationError:
        return None


def canonical_url(site_origin: str, path: str) -> str:
    """Join the site origin and a logical path into an absolute canonical URL."""
    if not path.startswith("/"):
        path = "/" + path
    return site_origin.rstrip("/") + path


def canonical_from_existing(site_origin: str, existing_href: str, fallback_path: str) -> str:
    """Rebuild a canonical URL, trusting only the path of an existing ``href``.

    Absolute hrefs keep their path, relative hrefs are treated as paths, and an
    empty href falls back to *fallback_path* (normally the request path).
    """
    href = existing_href.strip()
    if not href:
        return canonical_url(site_origin, fallback_path)
    parsed = urlparse(href)
    if parsed.scheme and parsed.netloc:
        return canonical_url(site_origin, parsed.path or "/")
    return canonical_url(site_origin, href)


def compose_title(page_title: str, site_title: str) -> str:
    """Return ``"{page} | {site}"`` without doubling the site suffix.

    The page title is used alone when the site title is empty, and the site
    title alone when the page title is empty or equals it.
    """
    page_title = page_title.strip()
    site_title = site_title.strip()
    if not page_title:
        return site_title
    if not site_title or page_title == site_title:
        return page_title
    if page_title.endswith(TITLE_SEPARATOR + site_title):
        return page_title
    return f"{page_title}{TITLE_SEPARATOR}{site_title}"


def origin_of(url: Optional[str]) -> Optional[str]:
    """Return ``scheme://host[:port]`` for *url*, or ``None`` when it is not absolute."""
    if not url:
        return None
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def optimized_image_url(image_url: str, cloud_name: Optional[str]) -> str:
    """Route *image_url* through the Cloudinary fetch API when a cloud is configured.

    URLs that already point at Cloudinary are returned unchanged, as is every
    URL when no cloud name is configured.
    """
    if not image_url or "res.cloudinary.com" in image_url or not cloud_name:
        return image_url
    return f"https://res.cloudinary.com/{cloud_name}/image/fetch/{_CLOUDINARY_TRANSFORM}/{image_url}"
