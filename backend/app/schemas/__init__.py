"""Pydantic schemas for API requests and responses."""

from app.schemas.common import ApiResponse, ErrorResponse
from app.schemas.link import (
    BidirectionalLinksSchema,
    EntityConnectionsSchema,
    GraphSchema,
    LinkCreateRequest,
    LinkPageSchema,
    LinkSchema,
    RemovedLinksSchema,
)

__all__ = [
    "ApiResponse",
    "ErrorResponse",
    "LinkSchema",
    "LinkCreateRequest",
    "LinkPageSchema",
    "BidirectionalLinksSchema",
    "EntityConnectionsSchema",
    "GraphSchema",
    "RemovedLinksSchema",
]
