"""Client for the content resource API (WordPress REST backend).

Every call is a single attempt with a timeout; there are no retries.  Any
transport, HTTP or decoding problem surfaces as :class:`UpstreamError`, and
preview queries with a bad token raise :class:`AuthError` before any network
traffic happens.
"""

import logging
import re
import secrets
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.config import Settings
from app.models.resource import (
    CategoryRecord,
    FeaturedImage,
    ResourceQuery,
    ResourceRecord,
)
from app.services.errors import AuthError, UpstreamError
from app.services.sanitizer import html_to_text

logger = logging.getLogger(__name__)

_CATEGORY_PAGE_SIZE = 100
_PREVIEW_STATUSES = "publish,draft,private"
_WP_JSON_SUFFIX_RE = re.compile(r"/wp-json.*$")


class ContentClient:
    """Issues :class:`ResourceQuery` objects against the content API.

    Holds only read-only configuration, so one instance per request is cheap
    and nothing leaks between requests.  *transport* lets tests substitute an
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    # ── Raw queries ──────────────────────────────────────────────────────────

    async def fetch_resource(self, query: ResourceQuery) -> List[Dict[str, Any]]:
        """Run *query* and return the upstream JSON array.

        Raises:
            AuthError: preview requested without the shared preview token.
            UpstreamError: configuration, network, HTTP or JSON failure.
        """
        if query.preview:
            self._check_preview_token(query.token)

        url, params = self._build_request(query)
        async with self._client() as client:
            headers = {}
            if query.preview:
                headers["Authorization"] = f"Bearer {await self._issue_token(client)}"

            try:
                resp = await client.get(url, params=params, headers=headers)
            except httpx.TimeoutException as exc:
                raise UpstreamError(f"Content API timed out: {url}") from exc
            except httpx.HTTPError as exc:
                raise UpstreamError(f"Content API request failed: {exc}") from exc

            if not resp.is_success:
                raise UpstreamError(
                    f"Content API error: {resp.status_code}", status_code=resp.status_code
                )
            try:
                data = resp.json()
            except ValueError as exc:
                raise UpstreamError("Content API returned invalid JSON") from exc

        if not isinstance(data, list):
            raise UpstreamError("Content API returned an unexpected payload shape")
        return data

    # ── Typed helpers ────────────────────────────────────────────────────────

    async def get_post(
        self, slug: str, preview: bool = False, token: Optional[str] = None
    ) -> Optional[ResourceRecord]:
        """Return the post named *slug*, or ``None`` when it does not exist."""
        items = await self.fetch_resource(ResourceQuery.by_slug(slug, preview=preview, token=token))
        for item in items:
            record = _item_to_record(item)
            if record is not None:
                return record
        return None

    async def get_posts(
        self, count: int = 10, offset: int = 0, category: Optional[int] = None
    ) -> List[ResourceRecord]:
        items = await self.fetch_resource(ResourceQuery.listing(count, offset, category))
        return [r for r in (_item_to_record(item) for item in items) if r is not None]

    async def get_categories(self) -> List[CategoryRecord]:
        items = await self.fetch_resource(ResourceQuery.categories())
        return [c for c in (_item_to_category(item) for item in items) if c is not None]

    async def get_latest_image(self, category: Optional[int] = None) -> Optional[FeaturedImage]:
        """Featured image of the most recent post (in *category* when given)."""
        items = await self.fetch_resource(ResourceQuery.latest(1, category=category))
        if not items:
            return None
        record = _item_to_record(items[0])
        return record.featured_image if record else None

    # ── Internals ────────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.content_api_timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    def _check_preview_token(self, token: Optional[str]) -> None:
        expected = self._settings.preview_token
        if not expected or not token:
            raise AuthError("Invalid preview token")
        if not secrets.compare_digest(token.encode(), expected.encode()):
            raise AuthError("Invalid preview token")

    def _build_request(self, query: ResourceQuery) -> Tuple[str, Dict[str, Any]]:
        base = self._settings.wordpress_api_url
        if not base:
            raise UpstreamError("WORDPRESS_API_URL is not configured")

        if query.kind == "categories":
            return f"{base}/categories", {"per_page": _CATEGORY_PAGE_SIZE}

        if query.kind == "slug":
            params: Dict[str, Any] = {"slug": query.slug, "_embed": "1"}
            if query.preview:
                params["status"] = _PREVIEW_STATUSES
            return f"{base}/posts", params

        params = {"per_page": query.count, "offset": query.offset, "_embed": "1"}
        if query.category is not None:
            params["categories"] = query.category
        return f"{base}/posts", params

    async def _issue_token(self, client: httpx.AsyncClient) -> str:
        """Exchange the preview service credentials for a bearer token.

        Fails closed: every problem raises :class:`UpstreamError`, so draft
        content is never requested without a token.
        """
        username = self._settings.wp_username
        password = self._settings.wp_password
        if not username or not password:
            logger.error("Preview requested but WP_USERNAME / WP_PASSWORD are missing")
            raise UpstreamError("Preview credentials are not configured")

        root = _WP_JSON_SUFFIX_RE.sub("", self._settings.wordpress_api_url or "")
        token_url = f"{root}/wp-json/jwt-auth/v1/token"
        try:
            resp = await client.post(token_url, json={"username": username, "password": password})
        except httpx.HTTPError as exc:
            logger.error("Token issuance request failed: %s", exc)
            raise UpstreamError("Failed to authenticate with the content API") from exc

        if not resp.is_success:
            logger.error("Token issuance failed: %s %s", resp.status_code, resp.text[:200])
            raise UpstreamError(
                "Failed to authenticate with the content API", status_code=resp.status_code
            )
        try:
            token = resp.json().get("token")
        except (ValueError, AttributeError) as exc:
            raise UpstreamError("Token endpoint returned invalid JSON") from exc
        if not token:
            raise UpstreamError("Token endpoint returned no token")
        return token


def _media_to_image(media: Any) -> Optional[FeaturedImage]:
    """Convert an embedded ``wp:featuredmedia`` item to a :class:`FeaturedImage`."""
    if not isinstance(media, dict) or not media.get("source_url"):
        return None
    details = media.get("media_details") or {}
    alt = media.get("alt_text") or html_to_text((media.get("title") or {}).get("rendered", ""))
    return FeaturedImage(
        url=media["source_url"],
        width=details.get("width") or 1792,
        height=details.get("height") or 1008,
        alt=alt,
    )


def _item_to_record(item: Any) -> Optional[ResourceRecord]:
    """Convert a single WordPress REST post item to a :class:`ResourceRecord`."""
    try:
        embedded = item.get("_embedded") or {}
        authors = embedded.get("author") or []
        media = embedded.get("wp:featuredmedia") or []

        return ResourceRecord(
            id=item["id"],
            slug=item.get("slug", ""),
            title=html_to_text((item.get("title") or {}).get("rendered", "")),
            content_html=(item.get("content") or {}).get("rendered", ""),
            excerpt_html=(item.get("excerpt") or {}).get("rendered", ""),
            published=item.get("date"),
            modified=item.get("modified"),
            author_name=authors[0].get("name") if authors and isinstance(authors[0], dict) else None,
            categories=[int(c) for c in item.get("categories") or []],
            featured_image=_media_to_image(media[0]) if media else None,
        )
    except Exception as exc:
        logger.warning("Failed to convert content item to ResourceRecord: %s", exc)
        return None


def _item_to_category(item: Any) -> Optional[CategoryRecord]:
    try:
        return CategoryRecord(
            id=item["id"],
            slug=item["slug"],
            name=html_to_text(item.get("name", "")),
            description=html_to_text(item.get("description", "")),
            count=item.get("count", 0),
        )
    except Exception as exc:
        logger.warning("Failed to convert content item to CategoryRecord: %s", exc)
        return None
