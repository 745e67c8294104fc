"""Test helper functions."""

import json
from typing import Dict, Any, Optional


def create_vercel_request(
    method: str = "POST",
    path: str = "/api/requests/transition",
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    if headers is None:
        headers = {
            "content-type": "application/json"
        }

    return {
        "method": method,
        "path": path,
        "headers": headers,
        "body": json.dumps(body) if isinstance(body, dict) else (body or ""),
        "query": query or {},
    }


def create_transition_body(
    request_id: str = "req-100",
    action: str = "accept",
    actor_id: str = "user-provider",
    note: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a transition request body."""
    body = {"request_id": request_id, "action": action, "actor_id": actor_id}
    if note is not None:
        body["note"] = note
    return body


def response_json(response: Dict[str, Any]) -> Dict[str, Any]:
    """Decode a handler response body."""
    return json.loads(response["body"])
