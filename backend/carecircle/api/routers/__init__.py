from .family_links import router as family_links_router
from .permission_requests import router as permission_requests_router
from .pending_items import router as pending_items_router
from .notifications import router as notifications_router
from .health import router as health_router

__all__ = [
	"family_links_router",
	"permission_requests_router",
	"pending_items_router",
	"notifications_router",
	"health_router",
]
