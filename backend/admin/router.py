# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Admin endpoints – registrations, user creation and suspension, audit trail and job
triggers.

Every endpoint in this router is guarded by ``require_admin``.  A request
that carries a valid token but belongs to any other role receives 403
before any business logic runs.
"""

import io
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from sqlalchemy.orm import Session

from admin.schemas import (
    AuditLogListResponse,
    AuditLogRow,
    CleanupStats,
    CreateUserRequest,
    JobResult,
    RejectUserRequest,
    UserRow,
)
from audit.recorder import AuditContext
from audit.route import SKIP_AUDIT, audit_create, audit_export, audited_route_class
from auth.service import AuthService, get_auth_service
from core.security import require_admin
from database import as_utc, get_db
from jobs import build_sweeper, run_document_cleanup, run_reminder_dispatch, run_token_cleanup
from models.audit_log import AuditLog
from models.user import User


def _user_without_password(call):
    if not isinstance(call.body, dict):
        return None
    return {k: v for k, v in call.body.items() if k != "password"}


AUDIT_RULES = {
    "create_user": audit_create("User", new_value=_user_without_password),
    "approve_user": SKIP_AUDIT,
    "reject_user": SKIP_AUDIT,
    "deactivate_user": SKIP_AUDIT,
    "activate_user": SKIP_AUDIT,
    "export_audit_logs": audit_export("AuditLog", entity_id=lambda call: "audit-logs"),
}

router = APIRouter(prefix="/admin", tags=["admin"], route_class=audited_route_class(AUDIT_RULES))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users/pending", response_model=list[UserRow])
def list_pending_users(
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    """Self-registrations waiting for a decision, oldest first."""
    return service.list_pending()


@router.post("/users", response_model=UserRow, status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    """Create an ACTIVE account directly; the user gets a welcome email."""
    return service.create_user_by_admin(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        department=body.department,
    )


@router.post("/users/{id}/approve", response_model=UserRow)
def approve_user(
    id: int,
    request: Request,
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    return service.approve_user(id, context=AuditContext.from_request(request, admin.id))


@router.post("/users/{id}/reject", response_model=UserRow)
def reject_user(
    id: int,
    body: RejectUserRequest,
    request: Request,
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    return service.reject_user(id, body.reason, context=AuditContext.from_request(request, admin.id))


@router.post("/users/{id}/deactivate", response_model=UserRow)
def deactivate_user(
    id: int,
    request: Request,
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    """Suspend the account and revoke all of its sessions."""
    return service.set_active(id, False, context=AuditContext.from_request(request, admin.id))


@router.post("/users/{id}/activate", response_model=UserRow)
def activate_user(
    id: int,
    request: Request,
    admin: User = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    return service.set_active(id, True, context=AuditContext.from_request(request, admin.id))


# ---------------------------------------------------------------------------
# GET /admin/audit-logs  – audit trail with optional filters
# ---------------------------------------------------------------------------


def _query_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    contract_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: Optional[int] = None,
):
    q = db.query(AuditLog, User.email).outerjoin(User, AuditLog.user_id == User.id)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    if contract_id is not None:
        q = q.filter(AuditLog.contract_id == contract_id)
    if since:
        q = q.filter(AuditLog.created_at >= as_utc(since))
    if until:
        q = q.filter(AuditLog.created_at <= as_utc(until))
    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def _to_row(log: AuditLog, email: Optional[str]) -> AuditLogRow:
    return AuditLogRow(
        id=log.id,
        action=log.action,
        entity_type=log.entity_type,
        entity_id=log.entity_id,
        user_id=log.user_id,
        user_email=email,
        old_value=log.old_value,
        new_value=log.new_value,
        ip_address=log.ip_address,
        user_agent=log.user_agent,
        contract_id=log.contract_id,
        document_id=log.document_id,
        created_at=log.created_at,
    )


@router.get("/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None, description="Filter by acting user"),
    contract_id: Optional[int] = Query(None),
    since: Optional[datetime] = Query(None, description="ISO-8601 start of time window"),
    until: Optional[datetime] = Query(None, description="ISO-8601 end of time window"),
    limit: int = Query(200, ge=1, le=1000),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Return audit rows newest-first (default 200, cap 1000)."""
    rows = _query_audit_logs(db, entity_type, action, user_id, contract_id, since, until, limit)
    return AuditLogListResponse(logs=[_to_row(log, email) for log, email in rows])


# ---------------------------------------------------------------------------
# GET /admin/audit-logs/export  – download audit logs as Excel
# ---------------------------------------------------------------------------

_AUDIT_HEADER_FONT  = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
_AUDIT_HEADER_FILL  = PatternFill(start_color="1A1A2E", end_color="1A1A2E", fill_type="solid")
_AUDIT_HEADER_ALIGN = Alignment(horizontal="center", vertical="center")
_AUDIT_THIN_BORDER  = Border(
    left=Side(style="thin", color="CCCCCC"),
    right=Side(style="thin", color="CCCCCC"),
    top=Side(style="thin", color="CCCCCC"),
    bottom=Side(style="thin", color="CCCCCC"),
)

_AUDIT_EXPORT_HEADERS = ["ID", "Time (UTC)", "User", "Action", "Entity", "Entity ID", "IP", "Old value", "New value"]
_AUDIT_COL_WIDTHS = [8, 20, 28, 12, 18, 16, 16, 40, 40]


@router.get("/audit-logs/export")
def export_audit_logs(
    entity_type: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Export the (filtered) audit trail as an Excel file."""
    rows = _query_audit_logs(db, entity_type, action, since=since, until=until)

    wb = Workbook()
    ws = wb.active
    ws.title = "Audit Logs"

    # Header row
    ws.append(_AUDIT_EXPORT_HEADERS)
    for cell in ws[1]:
        cell.font = _AUDIT_HEADER_FONT
        cell.fill = _AUDIT_HEADER_FILL
        cell.alignment = _AUDIT_HEADER_ALIGN
        cell.border = _AUDIT_THIN_BORDER

    # Data rows
    for log, email in rows:
        ws.append([
            log.id,
            log.created_at.strftime("%Y-%m-%d %H:%M:%S") if log.created_at else "",
            email or "",
            log.action,
            log.entity_type,
            log.entity_id,
            log.ip_address or "",
            str(log.old_value) if log.old_value is not None else "",
            str(log.new_value) if log.new_value is not None else "",
        ])
        row_idx = ws.max_row
        for col_idx in range(1, len(_AUDIT_EXPORT_HEADERS) + 1):
            ws.cell(row=row_idx, column=col_idx).border = _AUDIT_THIN_BORDER

    for col_idx, width in enumerate(_AUDIT_COL_WIDTHS, start=1):
        ws.column_dimensions[chr(64 + col_idx)].width = width

    # Stream
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    wb.close()

    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="audit-logs.xlsx"'},
    )


# ---------------------------------------------------------------------------
# Manual job triggers
# ---------------------------------------------------------------------------


@router.post("/jobs/reminders", response_model=JobResult)
def trigger_reminders(request: Request, admin: User = Depends(require_admin)):
    return run_reminder_dispatch(request.app.state)


@router.post("/jobs/document-cleanup", response_model=JobResult)
def trigger_document_cleanup(request: Request, admin: User = Depends(require_admin)):
    return run_document_cleanup(request.app.state)


@router.get("/jobs/document-cleanup", response_model=CleanupStats)
def document_cleanup_stats(
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return build_sweeper(request.app.state, db).stats()


@router.post("/jobs/token-cleanup", response_model=JobResult)
def trigger_token_cleanup(request: Request, admin: User = Depends(require_admin)):
    return run_token_cleanup(request.app.state)
