"""
Configuration module.

Exports:
    get_settings: Cached settings loader (also used as a FastAPI dependency)
    Settings: Settings model
    create_supabase_client: Build the Supabase client (owned by app lifespan)
    check_connection: Health check function
"""

from config.settings import get_settings, Settings
from config.database import (
    create_supabase_client,
    check_connection,
    ConnectionError
)

__all__ = [
    # Settings
    "get_settings",
    "Settings",

    # Database
    "create_supabase_client",
    "check_connection",
    "ConnectionError",
]
