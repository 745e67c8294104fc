"""Store and discovery settings read from the environment."""

import os
from typing import Optional


def _optional_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


class StoreConfig:
    """Table names and credentials for the managed store."""

    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    LISTINGS_TABLE = os.environ.get("LISTINGS_TABLE", "listings")
    SERVICE_REQUESTS_TABLE = os.environ.get("SERVICE_REQUESTS_TABLE", "service_requests")
    NOTIFICATIONS_TABLE = os.environ.get("NOTIFICATIONS_TABLE", "notifications")


class DiscoveryConfig:
    """Browse and subscription defaults."""

    PAGE_SIZE = int(os.environ.get("LISTINGS_PAGE_SIZE", "12"))
    # Unset means no timeout: a hung preferred query stays CONNECTING
    SUBSCRIPTION_CONNECT_TIMEOUT_SECONDS = _optional_float("SUBSCRIPTION_CONNECT_TIMEOUT_SECONDS")
