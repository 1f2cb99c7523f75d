"""Generic page rewriter: social tags derived from what the page already declares."""

import logging
from typing import Optional

from fastapi.responses import Response

from app.config import Settings
from app.models.meta import MetaTagSet, OpenGraph, TwitterCard
from app.models.resource import FeaturedImage
from app.services.html_head import merge_head, read_tag, read_title
from app.services.normalizer import canonical_from_existing, compose_title
from app.services.resolvers import BLOG_PATH, fallback_image, is_listing
from app.services.rewrite import (
    DEFAULT_IMAGE_PATH,
    RewriteContext,
    fail_open,
    html_response,
    image_fields,
    passthrough,
)

logger = logging.getLogger(__name__)

REWRITER = "social-meta"


def build_page_meta(
    html: str,
    settings: Settings,
    site_origin: str,
    path: str,
    listing: bool = False,
    image: Optional[FeaturedImage] = None,
) -> MetaTagSet:
    """Compute social tags for a static page from its own title, description and canonical.

    *image* is only consulted when the page has no usable ``og:image``.
    """
    title = compose_title(read_title(html), settings.site_title)

    existing_description = read_tag(html, "description")
    description = (
        existing_description.content.strip()
        if existing_description.non_empty
        else settings.site_description
    )

    url = canonical_from_existing(site_origin, read_tag(html, "canonical").content, path)

    existing_image = read_tag(html, "og:image")
    if existing_image.non_empty:
        image_url = existing_image.content.strip()
    elif image is not None:
        image_url = image.url
    else:
        image_url = site_origin + DEFAULT_IMAGE_PATH
    og_image, twitter_image = image_fields(settings, image_url, image)

    author = read_tag(html, "author")
    publisher = read_tag(html, "publisher")

    return MetaTagSet(
        title=title or None,
        canonical=url,
        description=description or None,
        author=(author.content.strip() if author.non_empty else settings.site_title) or None,
        publisher=(
            publisher.content.strip() if publisher.non_empty else settings.site_title
        ) or None,
        og=OpenGraph(
            type="website",
            url=url,
            title=title or None,
            description=description or None,
            site_name=settings.site_title or None,
            locale=settings.site_locale or None,
            **og_image,
        ),
        twitter=TwitterCard(
            site=settings.social_handle or None,
            url=url,
            title=title or None,
            description=description or None,
            **twitter_image,
        ),
        structured_data={
            "@context": "https://schema.org",
            "@type": "CollectionPage" if listing else "WebPage",
            "name": title,
            "description": description,
            "url": url,
            "image": og_image["image"],
            "publisher": {"@type": "Organization", "name": settings.site_title},
        },
    )


async def rewrite_page(ctx: RewriteContext) -> Response:
    """Serve any other HTML page with Open Graph, Twitter and JSON-LD tags added."""
    # Old-style post URLs (/blog?slug=...) belong to the post template
    if ctx.path == BLOG_PATH and "slug" in ctx.params:
        return await passthrough(ctx)

    async def enrich() -> Response:
        page = await ctx.origin.load()
        if not page.rewritable:
            return page.to_response()

        html = page.text()
        listing = is_listing(ctx.path)
        image = await fallback_image(ctx.client, html) if listing else None
        desired = build_page_meta(
            html, ctx.settings, ctx.site_origin, ctx.path, listing=listing, image=image
        )
        desired.resource_hints = ctx.resource_hints(include_content_api=listing)
        return html_response(page, merge_head(html, desired))

    return await fail_open(ctx, REWRITER, enrich)
