from fastapi import APIRouter

from carecircle.api.routers import (
    family_links_router,
    health_router,
    notifications_router,
    pending_items_router,
    permission_requests_router,
)

# API Router
router = APIRouter()
router.include_router(health_router)
router.include_router(family_links_router)
router.include_router(permission_requests_router)
router.include_router(pending_items_router)
router.include_router(notifications_router)
