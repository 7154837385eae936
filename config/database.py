"""
Database connection management.

The Supabase client is created once by the application lifespan and handed
to services through FastAPI dependencies. Nothing here caches a client at
module level.
"""

from supabase import create_client, Client
import structlog

from config.settings import Settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class ConnectionError(DatabaseError):
    """Failed to connect to database."""

    def __init__(self, message: str):
        super().__init__("connect", message)


def create_supabase_client(settings: Settings) -> Client:
    """
    Create a Supabase client.

    Prefers the service role key so server-side writes are not blocked
    by row level security; falls back to the anon key.

    Args:
        settings: Application settings

    Returns:
        Client: Supabase client

    Raises:
        ConnectionError: If the client cannot be created
    """
    key = settings.supabase_service_key or settings.supabase_key

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "...",  # Log partial URL only
            service_role=bool(settings.supabase_service_key)
        )
        client = create_client(settings.supabase_url, key)
        logger.info("supabase_client_created")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection(client: Client) -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        catalog = client.table("shopify_products").select("id", count="exact").limit(1).execute()
        inventory = client.table("inventory_items").select("id", count="exact").limit(1).execute()

        return {
            "status": "healthy",
            "catalog_count": catalog.count,
            "inventory_count": inventory.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
