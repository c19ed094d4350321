"""Moderation API routers."""

from fastapi import APIRouter

from . import blocked_urls, dlp_admin, screen

router = APIRouter()
router.include_router(screen.router)
router.include_router(blocked_urls.router)
router.include_router(dlp_admin.router)

__all__ = ["router"]
