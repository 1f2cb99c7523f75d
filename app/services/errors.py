"""Failure taxonomy of the head-rewriting pipeline.

Only :class:`AuthError` (data API) and :class:`NotFoundError` (category pages)
ever change the status code a client sees.  Everything else degrades to serving
the origin page untouched.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every pipeline failure."""


class ValidationError(PipelineError, ValueError):
    """Malformed slug or category input.  Treated as absence, never surfaced."""


class AuthError(PipelineError):
    """Missing or invalid preview token."""

    status_code = 401


class NotFoundError(PipelineError):
    """A requested resource (category slug) does not exist upstream."""

    status_code = 404


class UpstreamError(PipelineError):
    """Network, HTTP, timeout or decoding failure talking to the content API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TemplateError(PipelineError):
    """An expected anchor (``</head>``, a tag pattern) is missing from the HTML."""


class OriginError(PipelineError):
    """The origin page itself could not be fetched."""
