import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import Settings, get_settings, get_transport
from app.models.resource import DEFAULT_PAGE_SIZE, ResourceQuery
from app.models.response import ErrorResponse
from app.services.content_api import ContentClient
from app.services.errors import AuthError, UpstreamError
from app.services.normalizer import clean_slug

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
router = APIRouter()

CACHE_CONTROL = "public, s-maxage=3600, stale-while-revalidate=86400"
PREVIEW_CACHE_CONTROL = "private, no-store"


def _category_id(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip().isdecimal():
        return None
    try:
        return int(value)
    except ValueError:
        return None


def build_query(
    slug: Optional[str] = None,
    count: Optional[str] = None,
    offset: Optional[str] = None,
    category: Optional[str] = None,
    categories: Optional[str] = None,
    preview: bool = False,
    token: Optional[str] = None,
    page: Optional[str] = None,
    per_page: Optional[str] = None,
) -> Optional[ResourceQuery]:
    """Translate query-string parameters into a :class:`ResourceQuery`.

    Precedence is categories, then slug, then an offset window (``list``),
    then a page window (``page``), then the latest posts.  Returns ``None``
    for a malformed slug, which has no match.
    """
    if categories:
        return ResourceQuery.categories()
    if slug:
        if clean_slug(slug) is None:
            return None
        return ResourceQuery.by_slug(slug, preview=preview, token=token)
    if count:
        return ResourceQuery.listing(count, offset or 0, _category_id(category))
    if page:
        return ResourceQuery.page_of(_category_id(category), page, per_page or DEFAULT_PAGE_SIZE)
    return ResourceQuery.listing(DEFAULT_PAGE_SIZE)


@router.get(
    "/resource",
    summary="Query the content resource API",
    description=(
        "Proxy to the content backend. `?slug=` returns one post, `?list=` a "
        "window of posts (with `offset` and `category`), `?page=` a numbered page "
        "of `per_page` posts, `?categories=true` every category, and no parameters "
        "the latest ten posts. Preview queries (`preview=true`) require the shared "
        "preview `token`."
    ),
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
@limiter.limit("60/minute")
async def get_resource(
    request: Request,
    slug: Optional[str] = None,
    count: Optional[str] = Query(None, alias="list"),
    posts: Optional[str] = None,
    offset: Optional[str] = None,
    category: Optional[str] = None,
    categories: Optional[str] = None,
    preview: Optional[str] = None,
    token: Optional[str] = None,
    page: Optional[str] = None,
    per_page: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
) -> JSONResponse:
    is_preview = preview == "true"
    query = build_query(
        slug=slug,
        count=count or posts,
        offset=offset,
        category=category,
        categories=categories,
        preview=is_preview,
        token=token,
        page=page,
        per_page=per_page,
    )

    headers = {"Access-Control-Allow-Origin": "*"}
    if query is None:
        logger.warning("Invalid slug format", extra={"slug": (slug or "")[:100]})
        headers["Cache-Control"] = CACHE_CONTROL
        return JSONResponse(content=[], headers=headers)

    try:
        data = await ContentClient(settings, transport=transport).fetch_resource(query)
    except AuthError as exc:
        logger.warning("Rejected preview request: %s", exc)
        return JSONResponse(
            status_code=401,
            content=ErrorResponse(error="Unauthorized", message=str(exc)).model_dump(),
        )
    except UpstreamError as exc:
        logger.error(
            "Failed to fetch resources: %s",
            exc,
            extra={"kind": query.kind, "upstream_status": exc.status_code},
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="Failed to fetch resources", message=str(exc)).model_dump(),
        )

    headers["Cache-Control"] = PREVIEW_CACHE_CONTROL if query.preview else CACHE_CONTROL
    return JSONResponse(content=data, headers=headers)
