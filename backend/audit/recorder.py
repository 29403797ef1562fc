# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Audit recorder – the only writer of the ``audit_logs`` table.

Rows are appended, never updated or deleted.  ``record`` swallows and logs
its own failures: an audit hiccup must never fail the operation that
triggered it.
"""

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import sessionmaker

from core.logger import get_logger
from core.security import request_ip
from models.audit_log import AuditLog

audit_logger = get_logger("audit")


@dataclass(frozen=True)
class AuditContext:
    """Who did it and from where.  Passed explicitly to every service call
    that writes audit entries."""

    actor_id: Optional[int]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request, actor_id: Optional[int]) -> "AuditContext":
        return cls(
            actor_id=actor_id,
            ip_address=request_ip(request),
            user_agent=request.headers.get("user-agent"),
        )


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class AuditRecorder:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Any,
        context: AuditContext,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        contract_id: Optional[int] = None,
        document_id: Optional[int] = None,
    ) -> None:
        """Append one audit row in its own transaction.  Never raises."""
        # ids taken from path params arrive as strings
        if contract_id is None and entity_type == "Contract":
            contract_id = entity_id
        if document_id is None and entity_type == "Document":
            document_id = entity_id
        contract_id, document_id = _as_int(contract_id), _as_int(document_id)

        try:
            db = self._session_factory()
            try:
                db.add(AuditLog(
                    action=action,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    user_id=context.actor_id,
                    # snapshots may hold datetimes / Decimals
                    old_value=jsonable_encoder(old_value) if old_value is not None else None,
                    new_value=jsonable_encoder(new_value) if new_value is not None else None,
                    ip_address=context.ip_address,
                    user_agent=(context.user_agent or "")[:512] or None,
                    contract_id=contract_id,
                    document_id=document_id,
                ))
                db.commit()
            finally:
                db.close()
        except Exception:
            audit_logger.exception(
                "Failed to write audit log: action=%s entity=%s:%s actor=%s",
                action, entity_type, entity_id, context.actor_id,
            )
