from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """JSON error body returned by the content resource API."""

    error: str
    message: str
