"""
Database connection management.

Provides the Supabase client singleton used by the mapping store, the
session repository and the inventory snapshot store.

Tables:
    product_mappings     versioned product mapping rows (latest is active)
    sync_sessions        one row per sync run, mutated by conditional updates
    warehouse_inventory  last fetched quantity per warehouse SKU
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)

MAPPINGS_TABLE = "product_mappings"
SESSIONS_TABLE = "sync_sessions"
INVENTORY_TABLE = "warehouse_inventory"


class DatabaseConnectionError(Exception):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        DatabaseConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseConnectionError(f"Failed to connect to Supabase: {e}") from e


# Convenience alias
db = get_supabase_client


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = get_supabase_client()

        mappings = client.table(MAPPINGS_TABLE).select("version", count="exact").execute()
        sessions = (
            client.table(SESSIONS_TABLE)
            .select("session_id", count="exact")
            .in_("status", ["pending", "in_progress"])
            .execute()
        )

        return {
            "status": "healthy",
            "mapping_versions": mappings.count,
            "active_sessions": sessions.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached database connection.

    Call this if connection becomes stale or after config changes.
    """
    get_supabase_client.cache_clear()
    logger.info("database_connection_reset")
