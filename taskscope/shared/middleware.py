"""HTTP middleware: request context binding and automatic task audit capture."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from taskscope.shared.events import TASK_CREATED, TASK_DELETED, TASK_UPDATED
from taskscope.shared.events.context import request_context
from taskscope.shared.events.dispatcher import event_dispatcher

logger = logging.getLogger(__name__)

# HTTP method -> audited event type; GET is not recorded
AUDITED_METHODS = {
    "POST": TASK_CREATED,
    "PUT": TASK_UPDATED,
    "PATCH": TASK_UPDATED,
    "DELETE": TASK_DELETED,
}

TASKS_SEGMENT = "tasks"


def extract_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else X-Real-IP, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Resolves the client address once per request and makes it available on
    request.state.client_ip and to any event published while handling it.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        client_ip = extract_client_ip(request)
        request.state.client_ip = client_ip
        with request_context(client_ip):
            return await call_next(request)


def _task_resource_id(path: str) -> Optional[str]:
    parts = [p for p in path.split("/") if p]
    if TASKS_SEGMENT not in parts:
        return None
    index = parts.index(TASKS_SEGMENT)
    return parts[index + 1] if len(parts) > index + 1 else None


def _is_task_path(path: str) -> bool:
    return TASKS_SEGMENT in [p for p in path.split("/") if p]


def _parse_json(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


class TaskAuditMiddleware(BaseHTTPMiddleware):
    """
    Records every mutating request against task resources once it has settled,
    successful or not. Reads are not recorded. Requests that never resolved an
    identity (unauthenticated) are skipped.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        event_type = AUDITED_METHODS.get(request.method)
        if event_type is None or not _is_task_path(request.url.path):
            return await call_next(request)

        started = time.perf_counter()
        request_body = _parse_json(await request.body())

        try:
            response = await call_next(request)
        except Exception:
            self._publish(request, event_type, None, {
                "method": request.method,
                "url": str(request.url.path),
                "error": "Internal server error",
                "status_code": 500,
            })
            raise

        content = b"".join([chunk async for chunk in response.body_iterator])
        payload = _parse_json(content)

        if response.status_code < 400:
            created_id = payload.get("id") if isinstance(payload, dict) else None
            details = {
                "method": request.method,
                "url": str(request.url.path),
                "body": request_body,
                "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            }
            self._publish(request, event_type, created_id, details)
        else:
            error = payload.get("detail") if isinstance(payload, dict) else None
            details = {
                "method": request.method,
                "url": str(request.url.path),
                "error": error if isinstance(error, str) else json.dumps(error),
                "status_code": response.status_code,
            }
            self._publish(request, event_type, None, details)

        return Response(
            content=content,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )

    def _publish(
        self,
        request: Request,
        event_type: str,
        created_id: Optional[str],
        details: dict[str, Any],
    ) -> None:
        identity = getattr(request.state, "identity", None)
        if identity is None:
            return
        resource_id = _task_resource_id(request.url.path) or created_id or "unknown"
        event_dispatcher.publish({
            "event_type": event_type,
            "actor_id": str(identity.id),
            "resource_id": str(resource_id),
            "details": details,
            "ip_address": getattr(request.state, "client_ip", None),
        })
