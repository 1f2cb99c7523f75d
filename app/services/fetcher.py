"""Origin fetcher: retrieves the statically built page a rewriter works on."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx
from fastapi.responses import Response

from app.config import Settings
from app.services.errors import OriginError

logger = logging.getLogger(__name__)

MAX_CONTENT_SIZE = 10 * 1024 * 1024  # 10 MB

# Not forwarded: hop-by-hop headers, and headers describing the encoded body
# (httpx hands us the decoded bytes, and Starlette recomputes the length).
_DROPPED_HEADERS = {
    "connection",
    "content-encoding",
    "content-length",
    "keep-alive",
    "transfer-encoding",
}


@dataclass
class OriginPage:
    """Status, headers and body of one origin response."""

    status_code: int
    body: bytes
    headers: List[Tuple[str, str]] = field(default_factory=list)

    def header(self, name: str) -> str:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return ""

    @property
    def is_html(self) -> bool:
        return "text/html" in self.header("content-type").lower()

    @property
    def rewritable(self) -> bool:
        """Only successful HTML documents are enriched."""
        return self.status_code == 200 and self.is_html

    @property
    def charset(self) -> str:
        for part in self.header("content-type").split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip("\"'")
        return "utf-8"

    def text(self) -> str:
        try:
            return self.body.decode(self.charset, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")

    def forwarded_headers(self) -> dict:
        return {k: v for k, v in self.headers if k.lower() not in _DROPPED_HEADERS}

    def to_response(self) -> Response:
        """The untouched origin response."""
        return Response(
            content=self.body,
            status_code=self.status_code,
            headers=self.forwarded_headers(),
        )


class OriginLoader:
    """Fetches the origin rendering of a single request, at most once.

    One loader is created per incoming request, so the memoised page never
    outlives the request it belongs to.
    """

    def __init__(
        self,
        settings: Settings,
        path: str,
        query: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = settings.origin_url + path + (f"?{query}" if query else "")
        self._timeout = settings.origin_timeout
        self._transport = transport
        self._page: Optional[OriginPage] = None

    @property
    def url(self) -> str:
        return self._url

    async def load(self) -> OriginPage:
        """Return the origin page, fetching it on first use.

        Raises:
            OriginError: on network errors, timeouts or oversized bodies.
        """
        if self._page is None:
            self._page = await self._fetch()
        return self._page

    async def _fetch(self) -> OriginPage:
        # Redirects are passed through to the client rather than followed
        async with httpx.AsyncClient(
            follow_redirects=False, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                async with client.stream("GET", self._url) as response:
                    content_length = response.headers.get("content-length")
                    if content_length and int(content_length) > MAX_CONTENT_SIZE:
                        raise OriginError("Origin response exceeds the maximum allowed size.")

                    chunks = []
                    total = 0
                    async for chunk in response.aiter_bytes():
                        total += len(chunk)
                        if total > MAX_CONTENT_SIZE:
                            raise OriginError("Origin response exceeds the maximum allowed size.")
                        chunks.append(chunk)

                    return OriginPage(
                        status_code=response.status_code,
                        body=b"".join(chunks),
                        headers=list(response.headers.multi_items()),
                    )
            except httpx.HTTPError as exc:
                logger.error("Error fetching origin page %s: %s", self._url, exc)
                raise OriginError(f"Origin unavailable: {exc}") from exc
