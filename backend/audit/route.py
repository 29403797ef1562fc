# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Request-level audit interception.

Each feature router declares a plain mapping ``{endpoint name: AuditSpec}``
and builds its ``APIRouter`` with ``route_class=audited_route_class(rules)``.
After a mapped handler completes successfully the route resolves entity id,
snapshots and actor, then hands one audit write to a background task that
runs after the response has been sent.

* Handler errors propagate untouched; nothing is recorded.
* Default entity id: the ``id`` path parameter.
* Routes that must capture the row *before* the write (status changes,
  field diffs) are marked ``SKIP_AUDIT``; their service records explicitly.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from fastapi import Request, Response
from fastapi.routing import APIRoute
from starlette.background import BackgroundTask, BackgroundTasks

from audit.recorder import AuditContext
from core.logger import get_logger

audit_logger = get_logger("audit")


@dataclass(frozen=True)
class CallSnapshot:
    """What an extractor can see about a finished call."""

    path_params: dict
    body: Any = None      # parsed JSON request body, if any
    result: Any = None    # parsed JSON response body, if any


Extractor = Callable[[CallSnapshot], Any]


@dataclass(frozen=True)
class AuditSpec:
    action: str
    entity_type: str
    entity_id: Optional[Extractor] = None
    old_value: Optional[Extractor] = None
    new_value: Optional[Extractor] = None
    # Links the row to a contract when the entity itself is not one
    contract_id: Optional[Extractor] = field(default=None)


# Marker for routes whose service layer writes its own audit entries.
SKIP_AUDIT = None


def _default_entity_id(call: CallSnapshot) -> Any:
    return call.path_params.get("id")


def _result_id(call: CallSnapshot) -> Any:
    return call.result.get("id") if isinstance(call.result, dict) else None


def _request_body(call: CallSnapshot) -> Any:
    return call.body


def audit_create(entity_type: str, **overrides) -> AuditSpec:
    """CREATE: id from the response, new value = request body."""
    kwargs = {"entity_id": _result_id, "new_value": _request_body}
    kwargs.update(overrides)
    return AuditSpec(action="CREATE", entity_type=entity_type, **kwargs)


def audit_update(entity_type: str, **overrides) -> AuditSpec:
    kwargs = {"new_value": _request_body}
    kwargs.update(overrides)
    return AuditSpec(action="UPDATE", entity_type=entity_type, **kwargs)


def audit_delete(entity_type: str, **overrides) -> AuditSpec:
    return AuditSpec(action="DELETE", entity_type=entity_type, **overrides)


def audit_read(entity_type: str, **overrides) -> AuditSpec:
    return AuditSpec(action="READ", entity_type=entity_type, **overrides)


def audit_download(entity_type: str, **overrides) -> AuditSpec:
    return AuditSpec(action="DOWNLOAD", entity_type=entity_type, **overrides)


def audit_export(entity_type: str, **overrides) -> AuditSpec:
    return AuditSpec(action="EXPORT", entity_type=entity_type, **overrides)


# ---------------------------------------------------------------------------
# Snapshot helpers
# ---------------------------------------------------------------------------


async def _json_body(request: Request) -> Any:
    # Multipart bodies are already consumed by the form parser; only JSON
    # bodies are cached on the request and safe to read again.
    if not request.headers.get("content-type", "").startswith("application/json"):
        return None
    try:
        raw = await request.body()
        return json.loads(raw) if raw else None
    except (RuntimeError, ValueError):
        return None


def _json_result(response: Response) -> Any:
    body = getattr(response, "body", None)
    if not body or not response.media_type or "json" not in response.media_type:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


def _attach(response: Response, task: BackgroundTask) -> None:
    if response.background is None:
        response.background = task
    else:
        response.background = BackgroundTasks(tasks=[response.background, task])


async def _schedule_audit(request: Request, response: Response, spec: AuditSpec) -> None:
    actor_id = getattr(request.state, "user_id", None)
    if actor_id is None:
        # unauthenticated route – nobody to attribute the change to
        return

    call = CallSnapshot(
        path_params=dict(request.path_params),
        body=await _json_body(request),
        result=_json_result(response),
    )
    entity_id = (spec.entity_id or _default_entity_id)(call)
    if entity_id is None:
        return

    recorder = request.app.state.audit_recorder
    task = BackgroundTask(
        recorder.record,
        spec.action,
        spec.entity_type,
        entity_id,
        AuditContext.from_request(request, actor_id),
        old_value=spec.old_value(call) if spec.old_value else None,
        new_value=spec.new_value(call) if spec.new_value else None,
        contract_id=spec.contract_id(call) if spec.contract_id else None,
    )
    _attach(response, task)


def audited_route_class(rules: Mapping[str, Optional[AuditSpec]]) -> type:
    """Build an APIRoute subclass that audits the endpoints named in *rules*."""

    class AuditedRoute(APIRoute):
        def get_route_handler(self) -> Callable:
            handler = super().get_route_handler()
            spec = rules.get(self.name)
            if spec is None:
                return handler

            async def audited_handler(request: Request) -> Response:
                response = await handler(request)
                if response.status_code < 400:
                    try:
                        await _schedule_audit(request, response, spec)
                    except Exception:
                        audit_logger.exception("Audit interception failed for %s", self.name)
                return response

            return audited_handler

    return AuditedRoute
