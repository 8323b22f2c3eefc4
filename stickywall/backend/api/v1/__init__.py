"""
API Version 1 Router.

Aggregates all v1 endpoint routers.
"""

from fastapi import APIRouter

from stickywall.backend.api.v1.endpoints import admin, notes, session

router = APIRouter()

# Public wall
router.include_router(notes.router, prefix="/notes", tags=["notes"])
router.include_router(session.router, prefix="/session", tags=["session"])

# Moderation
router.include_router(admin.router, prefix="/admin", tags=["admin"])
