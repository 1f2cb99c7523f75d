from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10

QueryKind = Literal["slug", "listing", "categories"]


def clamp_int(value: object, low: int, high: int, default: int) -> int:
    """Coerce *value* to an int inside [low, high], using *default* when it is not a number."""
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return min(high, max(low, number))


class FeaturedImage(BaseModel):
    url: str
    width: int = 1792
    height: int = 1008
    alt: str = ""


class ResourceRecord(BaseModel):
    """One post returned by the content API, normalised for the rewriters."""

    model_config = {"frozen": True}

    id: int
    slug: str
    title: str  # plain text, entities decoded
    content_html: str = ""
    excerpt_html: str = ""
    published: Optional[str] = None
    modified: Optional[str] = None
    author_name: Optional[str] = None
    categories: List[int] = Field(default_factory=list)
    featured_image: Optional[FeaturedImage] = None


class CategoryRecord(BaseModel):
    model_config = {"frozen": True}

    id: int
    slug: str
    name: str
    description: str = ""
    count: int = 0


class ResourceQuery(BaseModel):
    """A single request to the content API.

    Exactly one shape is meaningful per query:

    * ``slug`` – one post by slug (optionally a preview with ``token``).
    * ``listing`` – a window of posts, optionally filtered by ``category`` id.
    * ``categories`` – every category.
    """

    kind: QueryKind = "listing"
    slug: Optional[str] = None
    category: Optional[int] = None
    count: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    preview: bool = False
    token: Optional[str] = None

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, value: object) -> int:
        return clamp_int(value, 1, MAX_PAGE_SIZE, DEFAULT_PAGE_SIZE)

    @field_validator("offset", mode="before")
    @classmethod
    def _clamp_offset(cls, value: object) -> int:
        # Negative or garbage offsets restart from the first item
        return clamp_int(value, 0, 2**31, 0)

    @classmethod
    def by_slug(
        cls, slug: str, preview: bool = False, token: Optional[str] = None
    ) -> "ResourceQuery":
        return cls(kind="slug", slug=slug, preview=preview, token=token)

    @classmethod
    def listing(
        cls, count: object = DEFAULT_PAGE_SIZE, offset: object = 0, category: Optional[int] = None
    ) -> "ResourceQuery":
        return cls(kind="listing", count=count, offset=offset, category=category)

    @classmethod
    def page_of(cls, category: Optional[int], page: object, page_size: object) -> "ResourceQuery":
        """Listing window addressed by 1-based *page* number instead of an offset."""
        size = clamp_int(page_size, 1, MAX_PAGE_SIZE, DEFAULT_PAGE_SIZE)
        number = clamp_int(page, 1, 2**31, 1)
        return cls(kind="listing", count=size, offset=(number - 1) * size, category=category)

    @classmethod
    def latest(cls, n: int = 1, category: Optional[int] = None) -> "ResourceQuery":
        return cls(kind="listing", count=n, category=category)

    @classmethod
    def categories(cls) -> "ResourceQuery":
        return cls(kind="categories")
