"""Plumbing shared by the page rewriters: request context, responses, fail-open guard."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from fastapi.responses import Response

from app.config import Settings
from app.models.resource import FeaturedImage
from app.services.content_api import ContentClient
from app.services.errors import OriginError, PipelineError
from app.services.fetcher import OriginLoader, OriginPage
from app.services.html_head import apply_noindex
from app.services.normalizer import optimized_image_url, origin_of

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
CACHE_CONTROL = "public, max-age=3600"
PREVIEW_CACHE_CONTROL = "private, no-store"
DEFAULT_IMAGE_PATH = "/social.jpg"


@dataclass(frozen=True)
class RewriteContext:
    """Everything one rewriter invocation needs, passed explicitly.

    Built fresh for every request; nothing in it is shared with other requests.
    """

    path: str
    params: Mapping[str, str]
    request_origin: str
    settings: Settings
    client: ContentClient
    origin: OriginLoader

    @property
    def site_origin(self) -> str:
        return self.settings.site_origin(self.request_origin)

    def resource_hints(self, include_content_api: bool = True) -> List[str]:
        hints = []
        api_origin = origin_of(self.settings.wordpress_api_url)
        if include_content_api and api_origin:
            hints.append(api_origin)
        if self.settings.image_cdn_origin:
            hints.append(self.settings.image_cdn_origin)
        return hints


def image_fields(
    settings: Settings,
    image_url: str,
    image: Optional[FeaturedImage] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Open Graph and Twitter image fields for *image_url*.

    Only a featured image (*image* describing *image_url*) is routed through the
    image CDN and gets dimensions and alt text; existing tags and the site
    default are used verbatim.
    """
    featured = image is not None and image.url == image_url
    url = optimized_image_url(image_url, settings.cloudinary_cloud_name) if featured else image_url
    og: Dict[str, Any] = {"image": url}
    twitter: Dict[str, Any] = {"image": url}
    if featured:
        og.update(image_width=image.width, image_height=image.height, image_alt=image.alt or None)
        twitter["image_alt"] = image.alt or None
    return og, twitter


# Describe the origin body, not the rewritten one
_REPLACED_HEADERS = ("content-type", "cache-control", "etag", "last-modified", "content-md5")


def html_response(
    page: OriginPage, html: str, cache_control: Optional[str] = CACHE_CONTROL
) -> Response:
    """A rewritten document, keeping the origin status and unrelated headers."""
    headers = {
        key: value
        for key, value in page.forwarded_headers().items()
        if key.lower() not in _REPLACED_HEADERS
    }
    headers["Content-Type"] = HTML_CONTENT_TYPE
    if cache_control:
        headers["Cache-Control"] = cache_control
    return Response(content=html.encode("utf-8"), status_code=page.status_code, headers=headers)


async def passthrough(ctx: RewriteContext) -> Response:
    """The untouched origin response."""
    return (await ctx.origin.load()).to_response()


async def noindex_template(ctx: RewriteContext) -> Response:
    """Serve a bare template with its robots tags flipped to ``noindex``."""
    page = await ctx.origin.load()
    if not page.is_html:
        return page.to_response()
    return html_response(page, apply_noindex(page.text()), cache_control=None)


async def fail_open(
    ctx: RewriteContext,
    rewriter: str,
    enrich: Callable[[], Awaitable[Response]],
) -> Response:
    """Run *enrich*; on any enrichment failure serve the origin page unmodified.

    Origin failures are not enrichment failures and propagate to the caller.
    """
    try:
        return await enrich()
    except OriginError:
        raise
    except PipelineError as exc:
        logger.warning(
            "[%s] Enrichment failed, serving original page: %s",
            rewriter,
            exc,
            extra={"path": ctx.path},
        )
    except Exception:
        logger.exception("[%s] Error processing request for %s", rewriter, ctx.path)
    return await passthrough(ctx)
