"""HTTP API."""

from bigcsv_migrator.api.router import api_router

__all__ = ["api_router"]
