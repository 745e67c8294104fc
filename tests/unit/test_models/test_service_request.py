"""Tests for ServiceRequest and NotificationEvent models."""

import pytest
from pydantic import ValidationError
from src.models.notification import NotificationCategory, NotificationEvent
from src.models.service_request import RequestStatus, RequestType, ServiceRequest
from tests.utils.factories import create_service_request_doc


@pytest.mark.unit
def test_service_request_from_document():
    """Test parsing a store row."""
    doc = create_service_request_doc(request_id="req-1", status="Accepted", provider_id="prov-1")
    request = ServiceRequest.from_document(doc)

    assert request.request_id == "req-1"
    assert request.status == RequestStatus.ACCEPTED
    assert request.provider_id == "prov-1"
    assert request.request_type == RequestType.RENOVATION


@pytest.mark.unit
def test_service_request_camel_case_columns():
    """Test camelCase column names."""
    request = ServiceRequest.from_document({
        "id": "req-2",
        "requestType": "construction",
        "userId": "user-1",
        "providerId": "prov-9",
        "status": "in progress",
        "detailedDescription": "Two storey house",
        "propertyId": "lst-4",
    })

    assert request.request_type == RequestType.CONSTRUCTION
    assert request.requester_id == "user-1"
    assert request.provider_id == "prov-9"
    assert request.status == RequestStatus.IN_PROGRESS
    assert request.description == "Two storey house"
    assert request.property_id == "lst-4"


@pytest.mark.unit
@pytest.mark.parametrize("raw, expected", [
    ("pending", RequestStatus.PENDING),
    ("In Progress", RequestStatus.IN_PROGRESS),
    ("in_progress", RequestStatus.IN_PROGRESS),
    ("canceled", RequestStatus.CANCELLED),
])
def test_service_request_status_aliases(raw, expected):
    """Test status spelling variants."""
    request = ServiceRequest(request_id="r", requester_id="u", status=raw)

    assert request.status == expected


@pytest.mark.unit
def test_service_request_unknown_status():
    """Test that unknown statuses are rejected."""
    with pytest.raises(ValidationError):
        ServiceRequest(request_id="r", requester_id="u", status="Archived")


@pytest.mark.unit
def test_request_status_terminal():
    """Test terminal statuses."""
    assert RequestStatus.COMPLETED.is_terminal
    assert RequestStatus.REJECTED.is_terminal
    assert RequestStatus.CANCELLED.is_terminal
    assert not RequestStatus.PENDING.is_terminal
    assert not RequestStatus.IN_PROGRESS.is_terminal


@pytest.mark.unit
def test_notification_event_to_row():
    """Test notifications table row shape."""
    event = NotificationEvent(
        recipient_id="user-1",
        category=NotificationCategory.SUCCESS,
        title="Renovation Request Accepted",
        message="Your renovation request has been accepted!",
        link="/renovation/my-renovations/req-1",
        request_id="req-1",
    )

    row = event.to_row()

    assert row == {
        "user_id": "user-1",
        "title": "Renovation Request Accepted",
        "message": "Your renovation request has been accepted!",
        "type": "success",
        "link": "/renovation/my-renovations/req-1",
        "read": False,
        "related_id": "req-1",
    }
    assert event.delivered is False
