"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import Mock, MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LISTINGS_PAGE_SIZE", "12")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from src.models.filters import FilterSpec, SortSpec
from src.models.listing import Listing
from src.models.service_request import RequestStatus, RequestType, ServiceRequest
from src.services.notification_dispatcher import NotificationDispatcher
from src.services.request_workflow import StatusTransitionEngine
from tests.utils.factories import create_listing_doc, create_listing_set
from tests.utils.fakes import FakeCollectionSource, FakeRequestStore, RecordingSink


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for testing."""
    client = Mock()
    client.table = Mock(return_value=MagicMock())
    return client


@pytest.fixture
def sample_listing_doc():
    """Raw listing document as written by the listing form."""
    return {
        "id": "lst-001",
        "title": "Sunny two bedroom flat",
        "description": "Close to the river, recently renovated",
        "listingType": "rent",
        "status": "published",
        "price": 1450,
        "address": {"city": "Lisbon", "street": "Rua Augusta 10"},
        "bedrooms": 2,
        "bathrooms": 1,
        "furnished": True,
        "parking": False,
        "area": 78,
        "createdAt": "2024-11-30T10:00:00Z",
        "ownerId": "user-owner-1",
    }


@pytest.fixture
def sample_listing(sample_listing_doc):
    """Parsed sample listing."""
    return Listing.from_document(sample_listing_doc)


@pytest.fixture
def mixed_listings():
    """15 listings, 10 of them rentals, with distinct creation times."""
    return create_listing_set(total=15, rentals=10)


@pytest.fixture
def rent_filters():
    return FilterSpec(kind="rent")


@pytest.fixture
def newest_first():
    return SortSpec.from_option("newest")


@pytest.fixture
def fake_source():
    """In-memory CollectionSource driven by the test."""
    return FakeCollectionSource()


@pytest.fixture
def pending_request():
    """Unassigned pending renovation request."""
    return ServiceRequest(
        request_id="req-100",
        request_type=RequestType.RENOVATION,
        requester_id="user-requester",
        provider_id=None,
        status=RequestStatus.PENDING,
        budget=25000,
        description="Kitchen remodel",
    )


@pytest.fixture
def request_store(pending_request):
    """Request store seeded with the pending request."""
    return FakeRequestStore([pending_request])


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def dispatcher(recording_sink):
    return NotificationDispatcher(recording_sink)


@pytest.fixture
def transition_engine(request_store, dispatcher):
    return StatusTransitionEngine(request_store, dispatcher)


@pytest.fixture
def listing_doc_factory():
    """Factory fixture for raw listing documents."""
    return create_listing_doc


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture
def mock_vercel_request():
    """Mock Vercel serverless function request."""
    return {
        "method": "GET",
        "path": "/api/listings/query",
        "headers": {
            "content-type": "application/json",
            "x-correlation-id": "req_test123",
        },
        "body": "",
        "query": {},
    }


@pytest.fixture(scope="function")
def reset_environment(monkeypatch):
    """Reset environment variables for each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
