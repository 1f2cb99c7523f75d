"""Category rewriter: ``/blog/c/{slug}`` pages built from the shared category template."""

import logging
from typing import Optional

from fastapi.responses import Response

from app.config import Settings
from app.models.meta import MetaTagSet, OpenGraph, TwitterCard
from app.models.resource import CategoryRecord, FeaturedImage
from app.services.errors import NotFoundError
from app.services.html_head import (
    merge_head,
    read_tag,
    replace_element_text,
    set_element_attribute,
)
from app.services.normalizer import canonical_url, compose_title
from app.services.resolvers import (
    ERROR_PAGE_PATH,
    fallback_image,
    find_category,
    resolve_category,
)
from app.services.rewrite import (
    DEFAULT_IMAGE_PATH,
    RewriteContext,
    fail_open,
    html_response,
    image_fields,
    noindex_template,
    passthrough,
)

logger = logging.getLogger(__name__)

REWRITER = "category-meta"


def category_heading(category: CategoryRecord) -> str:
    return f"Blog: {category.name}"


def category_description(category: CategoryRecord) -> str:
    return category.description or f"Browse {category.name} posts on our blog."


def _existing_or(html: str, key: str, default: str) -> Optional[str]:
    found = read_tag(html, key)
    return (found.content.strip() if found.non_empty else default) or None


def build_category_meta(
    category: CategoryRecord,
    html: str,
    settings: Settings,
    site_origin: str,
    image: Optional[FeaturedImage] = None,
) -> MetaTagSet:
    """Compute the desired head for a category page.

    An image already set by the template wins; otherwise *image* (the latest
    post in the category, if one was looked up) and finally the site-wide
    social image are used.
    """
    title = compose_title(category_heading(category), settings.site_title)
    description = category_description(category)
    url = canonical_url(site_origin, f"/blog/c/{category.slug}")
    existing_image = read_tag(html, "og:image")
    if existing_image.non_empty:
        image_url = existing_image.content.strip()
    elif image is not None:
        image_url = image.url
    else:
        image_url = site_origin + DEFAULT_IMAGE_PATH
    og_image, twitter_image = image_fields(settings, image_url, image)

    return MetaTagSet(
        title=title,
        canonical=url,
        description=description,
        author=_existing_or(html, "author", settings.site_title),
        publisher=_existing_or(html, "publisher", settings.site_title),
        og=OpenGraph(
            type="website",
            title=title,
            description=description,
            url=url,
            site_name=settings.site_title or None,
            locale=settings.site_locale or None,
            **og_image,
        ),
        twitter=TwitterCard(
            site=settings.social_handle or None,
            url=url,
            title=title,
            description=description,
            **twitter_image,
        ),
        structured_data={
            "@context": "https://schema.org",
            "@type": "CollectionPage",
            "name": title,
            "description": description,
            "url": url,
            "isPartOf": {
                "@type": "WebSite",
                "name": settings.site_title,
                "url": site_origin,
            },
        },
    )


def fill_category_body(html: str, category: CategoryRecord) -> str:
    """Fill the template's heading, description and post list anchors."""
    html = replace_element_text(html, "h1", "category-title", category_heading(category))
    html = replace_element_text(
        html, "p", "category-description", category_description(category)
    )
    return set_element_attribute(
        html, "x-blog-list", "category-posts", "category", str(category.id)
    )


async def rewrite_category(ctx: RewriteContext) -> Response:
    """Serve a category page, or a 404 redirect to the error page for unknown slugs."""
    resolution = resolve_category(ctx.path, ctx.params)
    if resolution.bare_template:
        return await noindex_template(ctx)
    if resolution.slug is None:
        return await passthrough(ctx)

    async def enrich() -> Response:
        try:
            category = await find_category(ctx.client, resolution.slug)
        except NotFoundError:
            logger.warning("[%s] Category not found for slug: %s", REWRITER, resolution.slug)
            return Response(status_code=404, headers={"Location": ERROR_PAGE_PATH})

        page = await ctx.origin.load()
        if not page.rewritable:
            return page.to_response()

        html = page.text()
        image = await fallback_image(ctx.client, html, category=category.id)
        desired = build_category_meta(category, html, ctx.settings, ctx.site_origin, image)
        desired.resource_hints = ctx.resource_hints()
        html = fill_category_body(merge_head(html, desired), category)
        return html_response(page, html)

    return await fail_open(ctx, REWRITER, enrich)
