import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from app.config import Settings, get_settings, get_transport
from app.services.content_api import ContentClient
from app.services.dispatcher import select_rewriter
from app.services.errors import OriginError
from app.services.fetcher import OriginLoader
from app.services.rewrite import RewriteContext

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{full_path:path}", include_in_schema=False)
async def edge(
    request: Request,
    full_path: str,
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
) -> Response:
    """Serve the origin page for *full_path*, enriched by the matching rewriter."""
    path = "/" + full_path
    origin = OriginLoader(settings, path, request.url.query, transport=transport)
    rewriter = select_rewriter(path)

    try:
        if rewriter is None:
            return (await origin.load()).to_response()

        ctx = RewriteContext(
            path=path,
            params=dict(request.query_params),
            request_origin=f"{request.url.scheme}://{request.url.netloc}",
            settings=settings,
            client=ContentClient(settings, transport=transport),
            origin=origin,
        )
        return await rewriter(ctx)
    except OriginError as exc:
        logger.error("Origin unavailable for %s: %s", path, exc)
        raise HTTPException(status_code=502, detail="The origin server could not be reached.")
