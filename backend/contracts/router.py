# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Contract endpoints.

Creation and reads are audited by the route class; updates, status changes,
assignments and deletes record their own before/after values in the service.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from audit.recorder import AuditContext
from audit.route import SKIP_AUDIT, audit_create, audit_read, audited_route_class
from contracts.schemas import (
    AssignContractRequest,
    ChangeStatusRequest,
    ContractRow,
    CreateContractRequest,
    UpdateContractRequest,
)
from contracts.service import ContractService
from core.security import get_current_user, require_editor, require_roles
from database import get_db
from deadlines.service import ReminderService
from models.user import User

AUDIT_RULES = {
    "create_contract": audit_create("Contract"),
    "get_contract": audit_read("Contract"),
    "update_contract": SKIP_AUDIT,
    "change_contract_status": SKIP_AUDIT,
    "assign_contract": SKIP_AUDIT,
    "delete_contract": SKIP_AUDIT,
}

router = APIRouter(prefix="/contracts", tags=["contracts"], route_class=audited_route_class(AUDIT_RULES))


def get_contract_service(request: Request, db: Session = Depends(get_db)) -> ContractService:
    state = request.app.state
    return ContractService(
        db,
        number_prefix=state.settings.contract_number_prefix,
        clock=state.clock,
        recorder=state.audit_recorder,
        reminders=ReminderService(db, email=state.email, clock=state.clock),
    )


@router.post("", response_model=ContractRow, status_code=status.HTTP_201_CREATED)
def create_contract(
    body: CreateContractRequest,
    current_user: User = Depends(require_editor),
    service: ContractService = Depends(get_contract_service),
):
    """Create a DRAFT contract with the next number of the current year."""
    return service.create(body.model_dump(), current_user)


@router.get("/{id}", response_model=ContractRow)
def get_contract(
    id: int,
    current_user: User = Depends(get_current_user),
    service: ContractService = Depends(get_contract_service),
):
    return service.get(id, current_user)


@router.put("/{id}", response_model=ContractRow)
def update_contract(
    id: int,
    body: UpdateContractRequest,
    request: Request,
    current_user: User = Depends(require_editor),
    service: ContractService = Depends(get_contract_service),
):
    return service.update(
        id,
        body.model_dump(exclude_unset=True),
        current_user,
        AuditContext.from_request(request, current_user.id),
    )


@router.patch("/{id}/status", response_model=ContractRow)
def change_contract_status(
    id: int,
    body: ChangeStatusRequest,
    request: Request,
    current_user: User = Depends(require_editor),
    service: ContractService = Depends(get_contract_service),
):
    return service.update_status(
        id,
        body.status,
        current_user,
        AuditContext.from_request(request, current_user.id),
    )


@router.post("/{id}/assign", response_model=ContractRow)
def assign_contract(
    id: int,
    body: AssignContractRequest,
    request: Request,
    current_user: User = Depends(require_roles("ADMIN", "MANAGER")),
    service: ContractService = Depends(get_contract_service),
):
    """Move the contract to another owner; the reason lands in the audit trail."""
    return service.assign(
        id,
        body.owner_id,
        current_user,
        AuditContext.from_request(request, current_user.id),
        reason=body.reason,
    )


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contract(
    id: int,
    request: Request,
    current_user: User = Depends(require_editor),
    service: ContractService = Depends(get_contract_service),
):
    service.remove(id, current_user, AuditContext.from_request(request, current_user.id))
