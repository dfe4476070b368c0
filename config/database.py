"""
Supabase connection management.

One cached client serves the items and item_images tables. Image uploads
go through the service-role client when a service key is configured,
since the item-images bucket is usually closed to the anon key.
"""

from supabase import create_client, Client
from functools import lru_cache
from typing import Optional
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Cached Supabase client for the import tables.

    Probes the items table once so a bad URL or key fails here rather
    than in the middle of a commit. Call get_supabase_client.cache_clear()
    to reconnect.

    Raises:
        ConnectionError: If the client cannot be created or the probe fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "...",
            items_table=settings.items_table,
        )

        client = create_client(settings.supabase_url, settings.supabase_key)
        client.table(settings.items_table).select("id").limit(1).execute()

        logger.info("supabase_connected")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


@lru_cache()
def get_admin_client() -> Optional[Client]:
    """
    Service-role client, or None when SUPABASE_SERVICE_KEY is unset.
    """
    if not settings.supabase_service_key:
        logger.warning("admin_client_not_configured")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:
        logger.error("admin_client_failed", error=str(e))
        return None


def get_storage_client() -> Client:
    """
    Client used for item-images bucket uploads.

    Falls back to the regular client; uploads then depend on the
    bucket's policies for the anon key.
    """
    admin = get_admin_client()
    if admin is not None:
        return admin

    logger.warning("storage_using_anon_client", bucket=settings.item_images_bucket)
    return get_supabase_client()


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Health of the tables the import pipeline writes to.

    Returns:
        dict: status, item count, and whether item_images is readable
    """
    try:
        client = get_supabase_client()

        items = (
            client.table(settings.items_table)
            .select("id", count="exact")
            .limit(1)
            .execute()
        )
        client.table(settings.item_images_table).select("id").limit(1).execute()

        return {
            "status": "healthy",
            "items_count": items.count,
            "item_images_table": settings.item_images_table,
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
