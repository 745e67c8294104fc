"""Supabase client wrapper with async context manager support."""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from supabase import Client, create_client
from supabase.client import ClientOptions

from src.models.listing import Listing
from src.models.notification import NotificationEvent
from src.models.service_request import RequestStatus, ServiceRequest
from src.models.sync import QueryDescriptor
from src.utils.config import StoreConfig
from src.utils.errors import (
    IndexMissingError,
    PermissionDeniedError,
    PersistError,
    RequestNotFoundError,
    StaleTransitionError,
    StoreError,
    UnknownStoreError,
)
from src.utils.logging import get_structured_logger, timed

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None

# Postgres / PostgREST codes for "you may not read this"
PERMISSION_CODES = {"42501", "PGRST301", "PGRST302", "401", "403"}
# Codes meaning the ordered/filtered query cannot be served as written
PRECONDITION_CODES = {"42703", "42883", "PGRST100", "PGRST200", "failed-precondition"}


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = StoreConfig.SUPABASE_URL
        key = StoreConfig.SUPABASE_SERVICE_ROLE_KEY

        if not url or not key:
            raise UnknownStoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", supabase_url=url)

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__,
            )
        return False


def classify_store_error(exc: BaseException) -> StoreError:
    """Map a PostgREST/realtime failure onto the store error taxonomy."""
    if isinstance(exc, StoreError):
        return exc

    code = str(getattr(exc, "code", "") or "")
    message = str(getattr(exc, "message", "") or exc)
    lowered = message.lower()

    if code in PERMISSION_CODES or "permission denied" in lowered or "row-level security" in lowered:
        return PermissionDeniedError(message)
    if code in PRECONDITION_CODES or "index" in lowered or "does not exist" in lowered:
        return IndexMissingError(message)
    return UnknownStoreError(message)


def apply_descriptor(query: Any, descriptor: QueryDescriptor) -> Any:
    """Push the descriptor's filters and ordering into a PostgREST select."""
    filters = descriptor.effective_filters

    if filters.kind is not None:
        query = query.eq("kind", filters.kind.value)
    if filters.status is not None:
        query = query.eq("status", filters.status.value)
    if filters.city:
        query = query.ilike("city", f"%{filters.city}%")
    if filters.min_price is not None:
        query = query.gte("price", filters.min_price)
    if filters.max_price is not None:
        query = query.lte("price", filters.max_price)
    if filters.min_bedrooms is not None:
        query = query.gte("bedrooms", filters.min_bedrooms)
    if filters.min_bathrooms is not None:
        query = query.gte("bathrooms", filters.min_bathrooms)
    if filters.furnished is not None:
        query = query.eq("furnished", filters.furnished)
    if filters.parking is not None:
        query = query.eq("parking", filters.parking)

    if descriptor.sort is not None:
        query = query.order(descriptor.sort.key.value, desc=descriptor.sort.descending)

    return query


def rows_to_listings(rows: List[Dict[str, Any]]) -> List[Listing]:
    """Parse rows, skipping (and logging) ones that are not valid listings."""
    listings = []
    for row in rows:
        try:
            listings.append(Listing.from_document(row))
        except (ValidationError, ValueError) as e:
            logger.warning("Skipping malformed listing row", row_id=row.get("id"), error=str(e))
    return listings


# Listings table operations
@timed("fetch_listings", logger=logger)
async def fetch_listings(descriptor: Optional[QueryDescriptor] = None) -> List[Listing]:
    """One-shot snapshot of a listing collection.

    Runs the descriptor's filtered/ordered select and falls back to an
    unordered, unfiltered select when the store cannot serve it.
    """
    descriptor = descriptor or QueryDescriptor(collection=StoreConfig.LISTINGS_TABLE, sort=None)
    async with SupabaseClient() as client:
        try:
            query = apply_descriptor(client.table(descriptor.collection).select("*"), descriptor)
            result = query.execute()
        except Exception as e:
            error = classify_store_error(e)
            if not isinstance(error, IndexMissingError):
                raise error
            logger.warning(
                "Listing query needs an index, using unordered fallback",
                collection=descriptor.collection,
                error=str(e),
            )
            try:
                result = client.table(descriptor.collection).select("*").execute()
            except Exception as fallback_error:
                raise classify_store_error(fallback_error)
        return rows_to_listings(result.data or [])


# Service request table operations
class SupabaseRequestStore:
    """RequestStore backed by the service requests table."""

    def __init__(self, table: Optional[str] = None):
        self.table = table or StoreConfig.SERVICE_REQUESTS_TABLE

    async def get(self, request_id: str) -> ServiceRequest:
        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).select("*").eq("id", request_id).execute()
            except Exception as e:
                raise classify_store_error(e)
            if not result.data:
                raise RequestNotFoundError(f"Service request not found: {request_id}")
            return ServiceRequest.from_document(result.data[0])

    async def create(self, request: ServiceRequest) -> ServiceRequest:
        """Insert a new request row and return it as stored."""
        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).insert(request.to_row()).execute()
            except Exception as e:
                error = classify_store_error(e)
                if isinstance(error, PermissionDeniedError):
                    raise error
                raise PersistError(f"Failed to create service request {request.request_id}: {e}")
            if not result.data:
                raise PersistError(f"Service request {request.request_id} was not stored")
            return ServiceRequest.from_document(result.data[0])

    async def persist(
        self,
        request_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[RequestStatus] = None,
    ) -> None:
        """Update the row; with ``expected_status`` the update is a compare-and-set."""
        async with SupabaseClient() as client:
            try:
                query = client.table(self.table).update(patch).eq("id", request_id)
                if expected_status is not None:
                    query = query.eq("status", expected_status.value)
                result = query.execute()
            except Exception as e:
                error = classify_store_error(e)
                if isinstance(error, PermissionDeniedError):
                    raise error
                raise PersistError(f"Failed to update service request {request_id}: {e}")
            if not result.data:
                if expected_status is not None:
                    raise StaleTransitionError(
                        f"Service request {request_id} is no longer {expected_status.value}"
                    )
                raise RequestNotFoundError(f"Service request not found: {request_id}")


# Notifications table operations
class SupabaseNotificationSink:
    """NotificationSink writing in-app notifications to the notifications table."""

    def __init__(self, table: Optional[str] = None):
        self.table = table or StoreConfig.NOTIFICATIONS_TABLE

    async def deliver(self, event: NotificationEvent) -> bool:
        async with SupabaseClient() as client:
            result = client.table(self.table).insert(event.to_row()).execute()
            return bool(result.data)
