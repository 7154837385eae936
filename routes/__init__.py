"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.catalog import router as catalog_router
from routes.inventory import router as inventory_router

__all__ = [
    "catalog_router",
    "inventory_router",
]
