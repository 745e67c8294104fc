"""Service request submission endpoint."""

import asyncio
import json
from typing import Optional

from pydantic import ValidationError

from src.models.service_request import ServiceRequest
from src.services.notification_dispatcher import NotificationDispatcher
from src.services.request_workflow import StatusTransitionEngine
from src.services.supabase_client import SupabaseNotificationSink, SupabaseRequestStore
from src.utils.errors import PermissionDeniedError, StoreError, UnauthorizedError
from src.utils.logging import correlation_context, get_structured_logger, mask_user_id, setup_logging
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


def _parse_body(request: dict) -> Optional[dict]:
    body = request.get("body")
    if isinstance(body, dict):
        return body
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


async def run_create(body: dict) -> ServiceRequest:
    dispatcher = NotificationDispatcher(SupabaseNotificationSink())
    engine = StatusTransitionEngine(SupabaseRequestStore(), dispatcher)
    try:
        return await engine.create(
            str(body["requester_id"]),
            request_type=body.get("request_type") or "renovation",
            provider_id=body.get("provider_id"),
            budget=body.get("budget"),
            description=body.get("description"),
            property_id=body.get("property_id"),
        )
    finally:
        await dispatcher.drain(timeout=10)


def handler(request):
    """
    Submit a service request.

    Body: ``{"requester_id", "request_type"?, "provider_id"?, "budget"?,
    "description"?, "property_id"?}``. Responds 201 with the new id.
    """
    headers = {key.lower(): value for key, value in (request.get("headers", {}) or {}).items()}
    correlation_id = headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER.lower())

    with correlation_context(correlation_id):
        body = _parse_body(request)
        if not body or not body.get("requester_id"):
            return _json_response(400, {"error": "requester_id is required"})

        try:
            created = asyncio.run(run_create(body))
            return _json_response(201, {
                "ok": True,
                "request_id": created.request_id,
                "status": created.status.value,
            })

        except ValidationError as e:
            return _json_response(400, {"error": "invalid_request", "message": str(e)})
        except UnauthorizedError as e:
            logger.warning(
                "Request submission rejected",
                requester_id=mask_user_id(e.actor_id),
                reason=e.reason,
            )
            return _json_response(403, {"error": "unauthorized", "message": str(e)})
        except PermissionDeniedError as e:
            return _json_response(403, {"error": "permission_denied", "message": str(e)})
        except StoreError as e:
            logger.error("Request submission failed in store", error=str(e), exc_info=True)
            return _json_response(502, {"error": "store_error", "message": str(e)})
        except Exception as e:
            logger.error("Error handling request submission", error=str(e), exc_info=True)
            return _json_response(500, {"error": str(e)})
