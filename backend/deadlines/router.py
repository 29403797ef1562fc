# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Reminder endpoints.  Access follows the contract the reminder belongs to."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from audit.route import audit_create, audit_delete, audited_route_class
from contracts.service import ContractService, visible_contract_ids
from core.security import get_current_user, require_editor
from database import get_db
from deadlines.schemas import CreateReminderRequest, ReminderRow, UpcomingReminderRow
from deadlines.service import ReminderService
from models.user import User


def _body_contract_id(call):
    return call.body.get("contract_id") if isinstance(call.body, dict) else None


AUDIT_RULES = {
    "create_reminder": audit_create("Reminder", contract_id=_body_contract_id),
    "delete_reminder": audit_delete("Reminder"),
}

router = APIRouter(prefix="/reminders", tags=["reminders"], route_class=audited_route_class(AUDIT_RULES))


def get_reminder_service(request: Request, db: Session = Depends(get_db)) -> ReminderService:
    return ReminderService(db, email=request.app.state.email, clock=request.app.state.clock)


@router.post("", response_model=ReminderRow, status_code=status.HTTP_201_CREATED)
def create_reminder(
    body: CreateReminderRequest,
    current_user: User = Depends(require_editor),
    db: Session = Depends(get_db),
    service: ReminderService = Depends(get_reminder_service),
):
    ContractService(db).get(body.contract_id, current_user)
    return service.create(body.contract_id, body.type, body.reminder_date, body.message)


@router.get("/contract/{contract_id}", response_model=list[ReminderRow])
def list_contract_reminders(
    contract_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ReminderService = Depends(get_reminder_service),
):
    ContractService(db).get(contract_id, current_user)
    return service.list_for_contract(contract_id)


@router.get("/upcoming", response_model=list[UpcomingReminderRow])
def upcoming_reminders(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ReminderService = Depends(get_reminder_service),
):
    """Unsent reminders of active contracts due in the next ``days`` days."""
    return service.upcoming(days, visible_contract_ids(db, current_user))


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reminder(
    id: int,
    current_user: User = Depends(require_editor),
    db: Session = Depends(get_db),
    service: ReminderService = Depends(get_reminder_service),
):
    reminder = service.get(id)
    ContractService(db).get(reminder.contract_id, current_user)
    service.delete(id)
