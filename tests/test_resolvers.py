import asyncio

import pytest

from app.services.content_api import ContentClient
from app.services.errors import NotFoundError
from app.services.resolvers import (
    fallback_image,
    find_category,
    is_listing,
    resolve_category,
    resolve_post,
)


class TestResolvePost:
    def test_slug_from_path(self):
        resolution = resolve_post("/blog/my-post", {})
        assert resolution.slug == "my-post"
        assert not resolution.bare_template

    def test_slug_from_query_wins(self):
        assert resolve_post("/blog/post", {"slug": "other"}).slug == "other"

    def test_bare_template(self):
        assert resolve_post("/blog/post", {}).bare_template
        assert resolve_post("/blog/post.html", {}).bare_template

    def test_invalid_slug_is_absent(self):
        resolution = resolve_post("/blog/my-post!", {})
        assert resolution.slug is None
        assert not resolution.bare_template

    def test_listing_paths_never_resolve(self):
        for path in ("/blog", "/blog/", "/blog/index.html"):
            assert resolve_post(path, {"slug": "x"}).slug is None
        assert not resolve_post("/blog/index.html", {}).bare_template

    def test_preview_flags(self):
        resolution = resolve_post("/blog/draft", {"preview": "true", "token": "t"})
        assert resolution.preview
        assert resolution.token == "t"
        assert not resolve_post("/blog/draft", {"preview": "1"}).preview


class TestResolveCategory:
    def test_slug_from_path(self):
        assert resolve_category("/blog/c/news", {}).slug == "news"

    def test_slug_from_query(self):
        assert resolve_category("/blog/category.html", {"cat": "tips"}).slug == "tips"

    def test_bare_template(self):
        assert resolve_category("/blog/category.html", {}).bare_template

    def test_invalid_slug(self):
        resolution = resolve_category("/blog/c/bad%20slug", {})
        assert resolution.slug is None
        assert not resolution.bare_template

    def test_prefix_only(self):
        assert resolve_category("/blog/c/", {}).slug is None


class TestIsListing:
    def test_listing(self):
        assert is_listing("/blog")
        assert is_listing("/blog/")
        assert not is_listing("/blog/index.html")
        assert not is_listing("/blog/my-post")


class TestFindCategory:
    def test_found(self, settings, backend):
        client = ContentClient(settings, transport=backend.transport())
        category = asyncio.run(find_category(client, "news"))
        assert category.id == 7

    def test_not_found(self, settings, backend):
        client = ContentClient(settings, transport=backend.transport())
        with pytest.raises(NotFoundError):
            asyncio.run(find_category(client, "events"))


class TestFallbackImage:
    def test_skipped_when_tag_present_even_if_empty(self, settings, backend):
        client = ContentClient(settings, transport=backend.transport())
        html = '<head><meta property="og:image" content=""></head>'
        assert asyncio.run(fallback_image(client, html)) is None
        assert backend.requests == []

    def test_fetched_when_tag_absent(self, settings, backend):
        client = ContentClient(settings, transport=backend.transport())
        image = asyncio.run(fallback_image(client, "<head></head>", category=7))
        assert image.url == "https://cms.test/uploads/hero.jpg"

    def test_failure_is_treated_as_no_image(self, settings, backend):
        backend.cms_timeout = True
        client = ContentClient(settings, transport=backend.transport())
        assert asyncio.run(fallback_image(client, "<head></head>")) is None
