# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""Partner endpoints – the counterparties contracts are signed with."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from audit.route import audit_create, audited_route_class
from core.errors import NotFound
from core.security import get_current_user, require_editor
from database import get_db
from models.partner import Partner
from models.user import User
from partners.schemas import CreatePartnerRequest, PartnerRow

AUDIT_RULES = {
    "create_partner": audit_create("Partner"),
}

router = APIRouter(prefix="/partners", tags=["partners"], route_class=audited_route_class(AUDIT_RULES))


@router.post("", response_model=PartnerRow, status_code=status.HTTP_201_CREATED)
def create_partner(
    body: CreatePartnerRequest,
    current_user: User = Depends(require_editor),
    db: Session = Depends(get_db),
):
    partner = Partner(name=body.name, type=body.type, email=body.email, is_active=True)
    db.add(partner)
    db.commit()
    db.refresh(partner)
    return partner


@router.get("/{id}", response_model=PartnerRow)
def get_partner(
    id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    partner = db.query(Partner).filter(Partner.id == id).first()
    if partner is None:
        raise NotFound("Partner not found")
    return partner
