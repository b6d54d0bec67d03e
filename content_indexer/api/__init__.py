"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from content_indexer.api.routes import indexing, search

# Create main API router
api_router = APIRouter()

# Include indexing routes
api_router.include_router(indexing.router)

# Include search routes
api_router.include_router(search.router)
