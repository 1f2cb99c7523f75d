from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OpenGraph(BaseModel):
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    image: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    image_alt: Optional[str] = None
    site_name: Optional[str] = None
    locale: Optional[str] = None
    published_time: Optional[str] = None
    modified_time: Optional[str] = None


class TwitterCard(BaseModel):
    card: Optional[str] = "summary_large_image"
    site: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    image_alt: Optional[str] = None


class MetaTagSet(BaseModel):
    """Desired state of a document's ``<head>``.

    ``None`` means "no opinion": the tag is neither inserted nor rewritten.
    Values are raw text; escaping happens when the tags are rendered.
    """

    title: Optional[str] = None
    canonical: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    robots: Optional[str] = None
    googlebot: Optional[str] = None
    og: OpenGraph = Field(default_factory=OpenGraph)
    twitter: TwitterCard = Field(default_factory=TwitterCard)
    structured_data: Optional[Dict[str, Any]] = None
    # Origins that get dns-prefetch + preconnect hints
    resource_hints: List[str] = Field(default_factory=list)
