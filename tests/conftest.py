"""Shared fixtures: settings and an in-memory origin + content API behind httpx.MockTransport."""

import json
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx
import pytest

from app.config import Settings
from app.services.content_api import ContentClient
from app.services.fetcher import OriginLoader
from app.services.rewrite import RewriteContext

ORIGIN_HOST = "origin.test"
CMS_HOST = "cms.test"

POST_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>Blog Post</title>
    <link rel="canonical" href="https://example.com/blog/post">
    <meta name="description" content="">
    <meta name="robots" content="index, follow" />
    <meta name="googlebot" content="index, follow" />
</head>
<body><x-blog-post></x-blog-post></body>
</html>
"""

CATEGORY_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>Category</title>
    <meta name="description" content="">
    <meta name="robots" content="index, follow" />
</head>
<body>
    <h1 id="category-title">Blog</h1>
    <p id="category-description"></p>
    <x-blog-list id="category-posts"></x-blog-list>
</body>
</html>
"""

LISTING_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>Blog</title>
    <meta name="description" content="All our articles">
    <link rel="canonical" href="/blog/">
</head>
<body><x-blog-list></x-blog-list></body>
</html>
"""

ABOUT_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>About</title>
    <link rel="canonical" href="http://localhost:5173/about">
</head>
<body><h1>About us</h1></body>
</html>
"""


def make_post(
    slug: str = "my-post",
    title: str = "My Post",
    excerpt: str = "<p>An excerpt about things [&hellip;]</p>\n",
    content: str = "<p>Body</p>",
    image: Optional[str] = "https://cms.test/uploads/hero.jpg",
    author: Optional[str] = "Jane Writer",
    post_id: int = 42,
) -> dict:
    embedded: dict = {}
    if author:
        embedded["author"] = [{"name": author}]
    if image:
        embedded["wp:featuredmedia"] = [
            {
                "source_url": image,
                "alt_text": "Hero image",
                "media_details": {
                    "width": 1600,
                    "height": 900,
                    "sizes": {"medium": {"source_url": image + "?w=300", "width": 300}},
                },
            }
        ]
    return {
        "id": post_id,
        "slug": slug,
        "title": {"rendered": title},
        "content": {"rendered": content},
        "excerpt": {"rendered": excerpt},
        "date": "2024-05-01T10:00:00",
        "modified": "2024-05-02T12:00:00",
        "categories": [7],
        "_embedded": embedded,
    }


def make_category(slug: str = "news", name: str = "News", description: str = "", cat_id: int = 7) -> dict:
    return {"id": cat_id, "slug": slug, "name": name, "description": description, "count": 3}


class FakeBackend:
    """Origin pages and a WordPress-shaped content API served from memory.

    Every request that reaches the transport is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.pages: Dict[str, Tuple[int, str, str]] = {}
        self.posts: List[dict] = []
        self.categories: List[dict] = []
        self.cms_timeout = False
        self.cms_status = 200
        self.token_status = 200
        self.origin_down = False
        self.requests: List[httpx.Request] = []

    def page(self, path: str, body: str, status: int = 200, content_type: str = "text/html; charset=utf-8") -> None:
        self.pages[path] = (status, body, content_type)

    def cms_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == CMS_HOST]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == ORIGIN_HOST:
            return self._origin(request)
        if request.url.host == CMS_HOST:
            return self._cms(request)
        return httpx.Response(404)

    def _origin(self, request: httpx.Request) -> httpx.Response:
        if self.origin_down:
            raise httpx.ConnectError("connection refused", request=request)
        status, body, content_type = self.pages.get(
            request.url.path, (404, "<html><head></head><body>Not found</body></html>", "text/html")
        )
        return httpx.Response(
            status,
            content=body.encode("utf-8"),
            headers={"content-type": content_type, "x-origin": "static"},
        )

    def _cms(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/wp-json/jwt-auth/v1/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "bad credentials"})
            return httpx.Response(200, json={"token": "jwt-token"})

        if self.cms_timeout:
            raise httpx.ReadTimeout("timed out", request=request)
        if self.cms_status != 200:
            return httpx.Response(self.cms_status, json={"code": "error"})

        params = request.url.params
        if request.url.path.endswith("/categories"):
            return httpx.Response(200, json=self.categories)
        if request.url.path.endswith("/posts"):
            posts = self.posts
            if "slug" in params:
                posts = [p for p in posts if p["slug"] == params["slug"]]
            if "categories" in params:
                posts = [p for p in posts if int(params["categories"]) in p["categories"]]
            offset = int(params.get("offset", 0))
            per_page = int(params.get("per_page", 10))
            return httpx.Response(200, content=json.dumps(posts[offset : offset + per_page]))
        return httpx.Response(404, json={"code": "rest_no_route"})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        site_url="https://example.com",
        site_title="Example",
        site_description="Example site description",
        social_handle="@example",
        wordpress_api_url=f"https://{CMS_HOST}/wp-json/wp/v2",
        origin_url=f"http://{ORIGIN_HOST}",
        preview_token="secret",
        wp_username="editor",
        wp_password="hunter2",
    )


@pytest.fixture
def backend() -> FakeBackend:
    fake = FakeBackend()
    fake.page("/blog/post", POST_TEMPLATE)
    fake.page("/blog/my-post", POST_TEMPLATE)
    fake.page("/blog/c/news", CATEGORY_TEMPLATE)
    fake.page("/blog", LISTING_PAGE)
    fake.page("/blog/post.html", POST_TEMPLATE)
    fake.page("/blog/category.html", CATEGORY_TEMPLATE)
    fake.page("/blog/", LISTING_PAGE)
    fake.page("/about", ABOUT_PAGE)
    fake.posts = [make_post()]
    fake.categories = [make_category()]
    return fake


def make_context(settings: Settings, backend: FakeBackend, path: str, params: Optional[dict] = None) -> RewriteContext:
    """A RewriteContext wired to *backend*, as the edge router builds it."""
    params = params or {}
    transport = backend.transport()
    return RewriteContext(
        path=path,
        params=params,
        request_origin="https://edge.test",
        settings=settings,
        client=ContentClient(settings, transport=transport),
        origin=OriginLoader(settings, path, urlencode(params), transport=transport),
    )
