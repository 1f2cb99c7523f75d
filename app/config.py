"""Environment-driven settings for the edge rewriter and the content API proxy."""

import os
from typing import Optional

import httpx
from pydantic import BaseModel, Field, field_validator


class Settings(BaseModel):
    """Read-only configuration shared by every request.

    Built from environment variables by :func:`get_settings`; routes receive it
    through ``Depends(get_settings)`` so tests can override it.
    """

    site_url: Optional[str] = Field(
        default=None,
        description="Canonical site origin. Falls back to the request origin when unset.",
    )
    site_title: str = ""
    site_description: str = ""
    site_locale: str = "en_GB"
    social_handle: str = ""

    wordpress_api_url: Optional[str] = Field(
        default=None,
        description="Content API base URL, e.g. https://cms.example.com/wp-json/wp/v2",
    )
    origin_url: str = "http://127.0.0.1:8080"

    preview_token: Optional[str] = None
    wp_username: Optional[str] = None
    wp_password: Optional[str] = None

    cloudinary_cloud_name: Optional[str] = None
    image_cdn_origin: str = "https://res.cloudinary.com"

    content_api_timeout: float = Field(default=5.0, gt=0, le=30)
    origin_timeout: float = Field(default=10.0, gt=0, le=60)

    @field_validator("site_url", "wordpress_api_url", "origin_url", "image_cdn_origin")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None

    def site_origin(self, request_origin: str) -> str:
        """Return the configured site URL, or *request_origin* when none is set."""
        return self.site_url or request_origin.rstrip("/")


# Environment variable → Settings field
_ENV_VARS = {
    "SITE_URL": "site_url",
    "SITE_TITLE": "site_title",
    "SITE_DESCRIPTION": "site_description",
    "SITE_LOCALE": "site_locale",
    "SOCIAL_HANDLE": "social_handle",
    "WORDPRESS_API_URL": "wordpress_api_url",
    "ORIGIN_URL": "origin_url",
    "PREVIEW_TOKEN": "preview_token",
    "WP_USERNAME": "wp_username",
    "WP_PASSWORD": "wp_password",
    "CLOUDINARY_CLOUD_NAME": "cloudinary_cloud_name",
    "IMAGE_CDN_ORIGIN": "image_cdn_origin",
    "CONTENT_API_TIMEOUT": "content_api_timeout",
    "ORIGIN_TIMEOUT": "origin_timeout",
}


def get_settings() -> Settings:
    """Build :class:`Settings` from the current process environment."""
    values = {
        field: os.environ[env]
        for env, field in _ENV_VARS.items()
        if os.environ.get(env, "").strip()
    }
    return Settings(**values)


def get_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for outbound httpx clients; ``None`` selects the real network.

    Overridden in tests with an ``httpx.MockTransport``.
    """
    return None
