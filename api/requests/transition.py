"""Service request transition endpoint (accept, reject, start, complete, cancel)."""

import asyncio
import json
from typing import Optional

from src.services.notification_dispatcher import NotificationDispatcher
from src.services.request_workflow import StatusTransitionEngine
from src.services.supabase_client import SupabaseNotificationSink, SupabaseRequestStore
from src.utils.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    RequestNotFoundError,
    StaleTransitionError,
    StoreError,
    UnauthorizedError,
)
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


async def run_transition(request_id: str, action: str, actor_id: str, note: Optional[str] = None) -> str:
    """Transition against the Supabase store, waiting for notification delivery before returning."""
    dispatcher = NotificationDispatcher(SupabaseNotificationSink())
    engine = StatusTransitionEngine(SupabaseRequestStore(), dispatcher)
    try:
        new_status = await engine.transition(request_id, action, actor_id, note=note)
    finally:
        # Serverless runtimes freeze after the response; let delivery finish first
        await dispatcher.drain(timeout=10)
    return new_status.value


def handler(request):
    """
    Apply a status transition.

    Body: ``{"request_id", "action", "actor_id", "note"?}``.
    """
    headers = {key.lower(): value for key, value in (request.get("headers", {}) or {}).items()}
    correlation_id = headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER.lower())

    with correlation_context(correlation_id):
        body = _parse_body(request)
        if not body or not body.get("request_id") or not body.get("action") or not body.get("actor_id"):
            return _json_response(400, {"error": "request_id, action and actor_id are required"})

        request_id = str(body["request_id"])
        try:
            new_status = asyncio.run(run_transition(
                request_id,
                str(body["action"]),
                str(body["actor_id"]),
                note=body.get("note"),
            ))
            return _json_response(200, {"ok": True, "request_id": request_id, "status": new_status})

        except UnauthorizedError as e:
            logger.warning(
                "Transition rejected: unauthorized",
                request_id=request_id,
                acting_id=mask_user_id(e.actor_id),
                action=e.action,
            )
            return _json_response(403, {"error": "unauthorized", "message": str(e)})
        except InvalidTransitionError as e:
            return _json_response(409, {
                "error": "invalid_transition",
                "message": str(e),
                "current": e.current,
                "requested": e.requested,
            })
        except StaleTransitionError as e:
            return _json_response(409, {"error": "stale_transition", "message": str(e)})
        except RequestNotFoundError as e:
            return _json_response(404, {"error": "not_found", "message": str(e)})
        except PermissionDeniedError as e:
            return _json_response(403, {"error": "permission_denied", "message": str(e)})
        except StoreError as e:
            logger.error("Transition failed in store", request_id=request_id, error=str(e), exc_info=True)
            return _json_response(502, {"error": "store_error", "message": str(e)})
        except Exception as e:
            logger.error("Error handling transition", request_id=request_id, error=str(e), exc_info=True)
            return _json_response(500, {"error": str(e)})
