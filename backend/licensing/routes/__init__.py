from licensing.routes.auth import router as auth_router
from licensing.routes.applications import router as applications_router
from licensing.routes.workflow import router as workflow_router
from licensing.routes.download import router as download_router
from licensing.routes.admin import router as admin_router
from licensing.routes.payment import router as payment_router

__all__ = [
    "auth_router", "applications_router", "workflow_router",
    "download_router", "admin_router", "payment_router",
]
