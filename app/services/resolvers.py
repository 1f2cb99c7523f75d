"""Resolvers: map a request path and query string to a content API lookup."""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from app.models.resource import CategoryRecord, FeaturedImage
from app.services.content_api import ContentClient
from app.services.errors import NotFoundError, PipelineError
from app.services.html_head import read_tag
from app.services.normalizer import clean_slug

logger = logging.getLogger(__name__)

BLOG_PATH = "/blog"
LISTING_PATHS = frozenset({"/blog", "/blog/"})
BLOG_INDEX_PATH = "/blog/index.html"
POST_TEMPLATE_SLUGS = frozenset({"post", "post.html"})
CATEGORY_PREFIX = "/blog/c/"
CATEGORY_TEMPLATE_PATH = "/blog/category.html"
ERROR_PAGE_PATH = "/404"


@dataclass(frozen=True)
class PostResolution:
    slug: Optional[str] = None
    bare_template: bool = False
    preview: bool = False
    token: Optional[str] = None


@dataclass(frozen=True)
class CategoryResolution:
    slug: Optional[str] = None
    bare_template: bool = False


def _last_segment(path: str) -> Optional[str]:
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else None


def _validated(slug: Optional[str], kind: str) -> Optional[str]:
    if not slug:
        return None
    cleaned = clean_slug(slug)
    if cleaned is None:
        logger.warning("Invalid %s slug format", kind, extra={"slug": slug[:100]})
    return cleaned


def is_listing(path: str) -> bool:
    """True for the bare blog listing page, with or without a trailing slash."""
    return path in LISTING_PATHS


def resolve_post(path: str, params: Mapping[str, str]) -> PostResolution:
    """Resolve a post slug from ``?slug=`` or the trailing path segment.

    The bare template (``/blog/post``, ``/blog/post.html``) resolves to
    ``bare_template=True``; malformed slugs resolve to no slug at all.
    """
    if is_listing(path) or path == BLOG_INDEX_PATH:
        return PostResolution()

    slug = params.get("slug")
    if not slug:
        slug = _last_segment(path)
        if slug in POST_TEMPLATE_SLUGS:
            return PostResolution(bare_template=True)

    return PostResolution(
        slug=_validated(slug, "post"),
        preview=params.get("preview") == "true",
        token=params.get("token") or None,
    )


def resolve_category(path: str, params: Mapping[str, str]) -> CategoryResolution:
    """Resolve a category slug from ``?cat=`` or a ``/blog/c/{slug}`` path."""
    slug = params.get("cat")
    if not slug and path.startswith(CATEGORY_PREFIX):
        segments = [s for s in path.split("/") if s]
        # blog, c, {slug}
        slug = segments[2] if len(segments) > 2 else None

    slug = _validated(slug, "category")
    if slug is None and path == CATEGORY_TEMPLATE_PATH:
        return CategoryResolution(bare_template=True)
    return CategoryResolution(slug=slug)


async def find_category(client: ContentClient, slug: str) -> CategoryRecord:
    """Look *slug* up in the full category list.

    Raises:
        NotFoundError: no category carries *slug*.
        UpstreamError: the category list could not be fetched.
    """
    for category in await client.get_categories():
        if category.slug == slug:
            return category
    raise NotFoundError(f"Category not found: {slug}")


async def fallback_image(
    client: ContentClient, html: str, category: Optional[int] = None
) -> Optional[FeaturedImage]:
    """Featured image of the latest post, fetched only when the page has no ``og:image`` tag.

    The gate is tag presence, not emptiness.  A failed lookup is logged and
    treated as "no image" so the rest of the enrichment still applies.
    """
    if read_tag(html, "og:image").present:
        return None
    try:
        return await client.get_latest_image(category=category)
    except PipelineError as exc:
        logger.warning("Failed to fetch latest post image: %s", exc)
        return None
