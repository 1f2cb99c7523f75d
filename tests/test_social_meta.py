"""Tests for the generic page rewriter."""

import asyncio

from app.models.resource import FeaturedImage
from app.services.html_head import read_tag, read_title
from app.services.social_meta import build_page_meta, rewrite_page
from conftest import ABOUT_PAGE, LISTING_PAGE, make_context

_SITE = "https://example.com"


class TestBuildPageMeta:
    def test_title_gets_site_suffix(self, settings):
        assert build_page_meta(ABOUT_PAGE, settings, _SITE, "/about").title == "About | Example"

    def test_title_already_suffixed(self, settings):
        html = ABOUT_PAGE.replace("<title>About</title>", "<title>About | Example</title>")
        assert build_page_meta(html, settings, _SITE, "/about").title == "About | Example"

    def test_missing_title_uses_site_title(self, settings):
        html = "<html><head></head><body></body></html>"
        assert build_page_meta(html, settings, _SITE, "/x").title == "Example"

    def test_existing_description_kept(self, settings):
        meta = build_page_meta(LISTING_PAGE, settings, _SITE, "/blog/")
        assert meta.description == "All our articles"

    def test_site_description_fallback(self, settings):
        assert build_page_meta(ABOUT_PAGE, settings, _SITE, "/about").description == (
            "Example site description"
        )

    def test_no_description_at_all(self, settings):
        bare = settings.model_copy(update={"site_description": ""})
        meta = build_page_meta(ABOUT_PAGE, bare, _SITE, "/about")
        assert meta.description is None
        assert meta.og.description is None

    def test_canonical_rebuilt_on_site_origin(self, settings):
        meta = build_page_meta(ABOUT_PAGE, settings, _SITE, "/about")
        assert meta.canonical == "https://example.com/about"
        assert meta.og.url == meta.canonical

    def test_canonical_from_request_path(self, settings):
        html = "<html><head><title>T</title></head></html>"
        assert build_page_meta(html, settings, _SITE, "/services").canonical == (
            "https://example.com/services"
        )

    def test_existing_image_kept(self, settings):
        html = ABOUT_PAGE.replace(
            "</head>", '<meta property="og:image" content="https://example.com/about.png"></head>'
        )
        assert build_page_meta(html, settings, _SITE, "/about").og.image == (
            "https://example.com/about.png"
        )

    def test_existing_image_kept_with_cdn_configured(self, settings):
        cdn = settings.model_copy(update={"cloudinary_cloud_name": "demo"})
        html = ABOUT_PAGE.replace(
            "</head>", '<meta property="og:image" content="https://example.com/about.jpg"></head>'
        )
        meta = build_page_meta(html, cdn, _SITE, "/about")
        assert meta.og.image == "https://example.com/about.jpg"
        assert meta.twitter.image == "https://example.com/about.jpg"

    def test_present_but_empty_image_uses_default(self, settings):
        html = ABOUT_PAGE.replace("</head>", '<meta property="og:image" content=""></head>')
        assert build_page_meta(html, settings, _SITE, "/about").og.image == (
            "https://example.com/social.jpg"
        )

    def test_listing_image(self, settings):
        image = FeaturedImage(url="https://cms.test/latest.jpg")
        meta = build_page_meta(LISTING_PAGE, settings, _SITE, "/blog/", listing=True, image=image)
        assert meta.og.image == "https://cms.test/latest.jpg"
        assert meta.structured_data["@type"] == "CollectionPage"

    def test_other_pages_are_web_pages(self, settings):
        meta = build_page_meta(ABOUT_PAGE, settings, _SITE, "/about")
        assert meta.structured_data["@type"] == "WebPage"
        assert meta.structured_data["publisher"] == {"@type": "Organization", "name": "Example"}


class TestRewritePage:
    def test_static_page(self, settings, backend):
        response = asyncio.run(rewrite_page(make_context(settings, backend, "/about")))
        html = response.body.decode()
        assert read_title(html) == "About | Example"
        assert read_tag(html, "og:image").content == "https://example.com/social.jpg"
        assert read_tag(html, "canonical").content == "https://example.com/about"
        assert read_tag(html, "author").content == "Example"
        assert 'href="https://cms.test"' not in html
        assert '<link rel="preconnect" href="https://res.cloudinary.com">' in html
        assert backend.cms_requests() == []

    def test_default_image_not_sent_through_cdn(self, settings, backend):
        cdn = settings.model_copy(update={"cloudinary_cloud_name": "demo"})
        response = asyncio.run(rewrite_page(make_context(cdn, backend, "/about")))
        html = response.body.decode()
        assert read_tag(html, "og:image").content == "https://example.com/social.jpg"
        assert read_tag(html, "twitter:image").content == "https://example.com/social.jpg"

    def test_listing_page_fetches_latest_image(self, settings, backend):
        response = asyncio.run(rewrite_page(make_context(settings, backend, "/blog/")))
        html = response.body.decode()
        assert read_tag(html, "og:image").content == "https://cms.test/uploads/hero.jpg"
        assert '<link rel="preconnect" href="https://cms.test">' in html
        assert '"@type": "CollectionPage"' in html

    def test_listing_survives_content_api_failure(self, settings, backend):
        backend.cms_timeout = True
        response = asyncio.run(rewrite_page(make_context(settings, backend, "/blog")))
        html = response.body.decode()
        assert read_tag(html, "og:image").content == "https://example.com/social.jpg"

    def test_legacy_post_url_passes_through(self, settings, backend):
        ctx = make_context(settings, backend, "/blog", {"slug": "my-post"})
        response = asyncio.run(rewrite_page(ctx))
        assert response.body == LISTING_PAGE.encode()

    def test_non_html_untouched(self, settings, backend):
        backend.page("/styles.css", "body{}", content_type="text/css")
        response = asyncio.run(rewrite_page(make_context(settings, backend, "/styles.css")))
        assert response.body == b"body{}"
        assert response.headers["content-type"] == "text/css"

    def test_error_status_untouched(self, settings, backend):
        response = asyncio.run(rewrite_page(make_context(settings, backend, "/missing")))
        assert response.status_code == 404
        assert b"Not found" in response.body
