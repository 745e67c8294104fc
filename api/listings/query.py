"""Listing browse endpoint: filter, sort and page the listing collection."""

import asyncio
import json
from typing import Any, Optional

from src.models.filters import FilterSpec, PageWindow, SortSpec
from src.models.listing import ListingKind
from src.services.query_engine import ListingQueryEngine
from src.services.supabase_client import fetch_listings
from src.utils.config import DiscoveryConfig
from src.utils.errors import PermissionDeniedError, StoreError
from src.utils.logging import correlation_context, get_structured_logger, setup_logging
from src.utils.logging_config import LoggingConfig

# Configure logging once per cold start
setup_logging()
logger = get_structured_logger(__name__)


def _json_response(status_code: int, payload: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload),
    }


def _int_param(value: Any, default: int, minimum: int = 0) -> int:
    try:
        number = int(str(value))
    except (TypeError, ValueError):
        return default
    return number if number >= minimum else default


def _header(request: dict, name: str) -> Optional[str]:
    headers = request.get("headers", {}) or {}
    lowered = {key.lower(): value for key, value in headers.items()}
    return lowered.get(name.lower())


def handler(request):
    """
    Browse listings.

    Query params: filter fields (``type``, ``status``, ``city``,
    ``minPrice``, ``maxPrice``, ``bedrooms``, ``bathrooms``, ``furnished``,
    ``parking``), ``search``, ``sort`` (newest/oldest/price-low/price-high),
    ``mode`` (``rent`` forces rentals only), ``page_size``, ``shown`` and
    ``load_more``.
    """
    query_params = request.get("query", {}) or {}

    with correlation_context(_header(request, LoggingConfig.LOG_CORRELATION_ID_HEADER)):
        try:
            kind_override = ListingKind.RENT if query_params.get("mode") == "rent" else None
            filters = FilterSpec.from_params(query_params)
            sort = SortSpec.from_option(query_params.get("sort"))
            page_size = _int_param(query_params.get("page_size"), DiscoveryConfig.PAGE_SIZE, minimum=1)
            shown = _int_param(query_params.get("shown"), 0)
            window = PageWindow(page_size=page_size, shown=shown)

            listings = asyncio.run(fetch_listings())
            engine = ListingQueryEngine(lambda: listings, page_size=page_size, kind_override=kind_override)
            result = engine.query(filters, sort, window, search_term=query_params.get("search", ""))
            if str(query_params.get("load_more", "")).lower() in ("1", "true"):
                result = engine.load_more()

            return _json_response(200, {
                "items": [listing.model_dump(mode="json") for listing in result.items],
                "has_more": result.has_more,
                "total": result.total,
                "shown": result.window.shown,
                "page_size": result.window.page_size,
            })

        except PermissionDeniedError as e:
            logger.warning("Listing query denied by store", error=str(e))
            return _json_response(403, {"error": "permission_denied", "message": str(e)})
        except StoreError as e:
            logger.error("Listing query failed", error=str(e), exc_info=True)
            return _json_response(502, {"error": "store_unavailable", "message": str(e)})
        except Exception as e:
            logger.error("Error handling listing query", error=str(e), exc_info=True)
            return _json_response(500, {"error": str(e)})
