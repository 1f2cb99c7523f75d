"""Post rewriter: head tags and ``BlogPosting`` data for ``/blog/{slug}`` pages."""

import logging
from typing import Any, Dict

from fastapi.responses import Response

from app.config import Settings
from app.models.meta import MetaTagSet, OpenGraph, TwitterCard
from app.models.resource import ResourceRecord
from app.services.html_head import merge_head, read_tag
from app.services.normalizer import canonical_url, compose_title
from app.services.resolvers import resolve_post
from app.services.rewrite import (
    CACHE_CONTROL,
    DEFAULT_IMAGE_PATH,
    PREVIEW_CACHE_CONTROL,
    RewriteContext,
    fail_open,
    html_response,
    image_fields,
    noindex_template,
    passthrough,
)
from app.services.sanitizer import excerpt_to_description

logger = logging.getLogger(__name__)

REWRITER = "post-meta"
DEFAULT_POST_DESCRIPTION = "Read this article for insights, tips, and valuable information."
PREVIEW_ROBOTS = "noindex, nofollow"


def build_post_meta(
    post: ResourceRecord,
    html: str,
    settings: Settings,
    site_origin: str,
    preview: bool = False,
) -> MetaTagSet:
    """Compute the desired head of *html* for *post*.

    The post's own excerpt (or, without one, the opening of its body) and its
    featured image win over whatever the shared template carries; author and
    publisher tags already filled in are kept.
    """
    title = compose_title(post.title, settings.site_title)
    url = canonical_url(site_origin, f"/blog/{post.slug}")
    description = (
        excerpt_to_description(post.excerpt_html)
        or excerpt_to_description(post.content_html)
        or settings.site_description
        or DEFAULT_POST_DESCRIPTION
    )

    existing_author = read_tag(html, "author")
    existing_publisher = read_tag(html, "publisher")
    author = (
        existing_author.content.strip()
        if existing_author.non_empty
        else post.author_name or settings.site_title
    )
    publisher = (
        existing_publisher.content.strip() if existing_publisher.non_empty else settings.site_title
    )

    featured = post.featured_image
    existing_image = read_tag(html, "og:image")
    if featured is not None:
        image_url = featured.url
    elif existing_image.non_empty:
        image_url = existing_image.content.strip()
    else:
        image_url = site_origin + DEFAULT_IMAGE_PATH
    og_image, twitter_image = image_fields(settings, image_url, featured)

    structured: Dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "BlogPosting",
        "headline": title,
        "description": description,
        "url": url,
        "datePublished": post.published,
        "dateModified": post.modified or post.published,
        "author": {"@type": "Person", "name": post.author_name or settings.site_title},
        "publisher": {"@type": "Organization", "name": settings.site_title},
        "image": og_image["image"],
    }

    return MetaTagSet(
        title=title,
        canonical=url,
        description=description,
        author=author or None,
        publisher=publisher or None,
        robots=PREVIEW_ROBOTS if preview else None,
        googlebot=PREVIEW_ROBOTS if preview else None,
        og=OpenGraph(
            type="article",
            title=title,
            description=description,
            url=url,
            site_name=settings.site_title or None,
            locale=settings.site_locale or None,
            published_time=post.published,
            modified_time=post.modified or post.published,
            **og_image,
        ),
        twitter=TwitterCard(
            site=settings.social_handle or None,
            url=url,
            title=title,
            description=description,
            **twitter_image,
        ),
        structured_data={k: v for k, v in structured.items() if v is not None},
    )


async def rewrite_post(ctx: RewriteContext) -> Response:
    """Serve a post page with head tags describing the post named in the URL."""
    resolution = resolve_post(ctx.path, ctx.params)
    if resolution.bare_template:
        return await noindex_template(ctx)
    if resolution.slug is None:
        return await passthrough(ctx)

    async def enrich() -> Response:
        post = await ctx.client.get_post(
            resolution.slug, preview=resolution.preview, token=resolution.token
        )
        if post is None:
            logger.warning("[%s] Post not found for slug: %s", REWRITER, resolution.slug)
            return await passthrough(ctx)

        page = await ctx.origin.load()
        if not page.rewritable:
            return page.to_response()

        html = page.text()
        desired = build_post_meta(
            post, html, ctx.settings, ctx.site_origin, preview=resolution.preview
        )
        desired.resource_hints = ctx.resource_hints()
        cache_control = PREVIEW_CACHE_CONTROL if resolution.preview else CACHE_CONTROL
        return html_response(page, merge_head(html, desired), cache_control=cache_control)

    return await fail_open(ctx, REWRITER, enrich)
