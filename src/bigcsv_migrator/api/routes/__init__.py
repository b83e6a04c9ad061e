"""Route modules public API."""

from bigcsv_migrator.api.routes.health import router as health_router
from bigcsv_migrator.api.routes.management import router as management_router

__all__ = ["health_router", "management_router"]
