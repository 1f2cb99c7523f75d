"""Choose the rewriter responsible for a request path."""

from typing import Awaitable, Callable, Optional

from fastapi.responses import Response

from app.services.category_meta import rewrite_category
from app.services.post_meta import rewrite_post
from app.services.resolvers import (
    BLOG_INDEX_PATH,
    CATEGORY_PREFIX,
    CATEGORY_TEMPLATE_PATH,
    is_listing,
)
from app.services.rewrite import RewriteContext
from app.services.social_meta import rewrite_page

Rewriter = Callable[[RewriteContext], Awaitable[Response]]

# Served exactly as the origin built them
UNTOUCHED_PATHS = frozenset({"/404", "/404.html", BLOG_INDEX_PATH})


def select_rewriter(path: str) -> Optional[Rewriter]:
    """Return the rewriter for *path*, or ``None`` when the origin page is served as is.

    Every path maps to at most one rewriter: category pages, then posts under
    ``/blog/``, then everything else (the ``/blog`` listing included).
    ``/blog/index.html`` is served exactly as built.
    """
    if path in UNTOUCHED_PATHS:
        return None
    if path.startswith(CATEGORY_PREFIX) or path == CATEGORY_TEMPLATE_PATH:
        return rewrite_category
    if path.startswith("/blog/") and not is_listing(path):
        return rewrite_post
    return rewrite_page
