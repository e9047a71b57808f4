"""API v1 router - aggregates all route modules."""

from fastapi import APIRouter

from app.routes.v1 import links

api_router = APIRouter()

api_router.include_router(links.router, prefix="/links", tags=["links"])
