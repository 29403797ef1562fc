# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Contract service – numbering, creation, updates and the status lifecycle.

Contract numbers look like ``CT-2026-00042``: prefix, year, and a per-year
counter kept in ``contract_sequences``.  The counter row is bumped with a
single UPDATE, so the row lock serialises concurrent creates and the numbers
stay unique and gapless within a year.

``update``, ``update_status``, ``assign`` and ``remove`` read the row before
writing it and record the audit entry themselves; only they know the previous
values.
"""

from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.recorder import AuditContext, AuditRecorder
from core.errors import BadRequest, Conflict, Forbidden, NotFound
from core.logger import logger
from database import as_utc, utcnow
from deadlines.service import ReminderService
from models.contract import CONTRACT_TYPES, Contract, ContractSequence
from models.document import Document
from models.partner import Partner
from models.reminder import Reminder
from models.user import User

# status → statuses it may move to
ALLOWED_TRANSITIONS = {
    "DRAFT": {"PENDING_APPROVAL", "ACTIVE", "ARCHIVED"},
    "PENDING_APPROVAL": {"DRAFT", "ACTIVE", "ARCHIVED"},
    "ACTIVE": {"TERMINATED", "EXPIRED"},
    "TERMINATED": {"ARCHIVED"},
    "EXPIRED": {"ARCHIVED"},
    "ARCHIVED": set(),
}

UPDATABLE_FIELDS = (
    "title", "description", "type", "start_date", "end_date",
    "notice_period_days", "auto_renewal", "value", "currency",
    "partner_id", "owner_id",
)
_REQUIRED_FIELDS = ("title", "type", "auto_renewal", "currency", "partner_id", "owner_id")

_SEQUENCE_RETRIES = 5


def next_contract_number(db: Session, prefix: str, year: int) -> str:
    """
    Allocate the next number of *year* inside the caller's transaction.

    Must be the first write of that transaction: losing the race to create
    a new year's counter row rolls the transaction back and retries.
    """
    for _ in range(_SEQUENCE_RETRIES):
        bumped = (
            db.query(ContractSequence)
            .filter(ContractSequence.year == year)
            .update(
                {ContractSequence.last_value: ContractSequence.last_value + 1},
                synchronize_session=False,
            )
        )
        if bumped:
            value = (
                db.query(ContractSequence.last_value)
                .filter(ContractSequence.year == year)
                .scalar()
            )
            return f"{prefix}-{year}-{value:05d}"

        db.add(ContractSequence(year=year, last_value=1))
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            continue
        return f"{prefix}-{year}-{1:05d}"

    raise Conflict("Could not allocate a contract number, please retry")


def can_access(user: User, contract: Contract) -> bool:
    return user.role == "ADMIN" or user.id in (contract.owner_id, contract.created_by_id)


def visible_contract_ids(db: Session, user: User) -> Optional[list[int]]:
    """Ids the user may see; None means all of them."""
    if user.role == "ADMIN":
        return None
    rows = (
        db.query(Contract.id)
        .filter((Contract.owner_id == user.id) | (Contract.created_by_id == user.id))
        .all()
    )
    return [row.id for row in rows]


def _snapshot(contract: Contract, fields) -> dict:
    return {name: getattr(contract, name) for name in fields}


class ContractService:
    def __init__(
        self,
        db: Session,
        number_prefix: str = "CT",
        clock: Callable = utcnow,
        recorder: Optional[AuditRecorder] = None,
        reminders: Optional[ReminderService] = None,
    ):
        self.db = db
        self.number_prefix = number_prefix
        self.clock = clock
        self.recorder = recorder
        self.reminders = reminders or ReminderService(db, clock=clock)

    def _check_refs(self, partner_id: Optional[int], owner_id: Optional[int]) -> None:
        if partner_id is not None and self.db.query(Partner.id).filter(Partner.id == partner_id).first() is None:
            raise BadRequest("Partner does not exist")
        if owner_id is not None and self.db.query(User.id).filter(User.id == owner_id).first() is None:
            raise BadRequest("Owner does not exist")

    @staticmethod
    def _check_dates(start_date, end_date) -> None:
        if start_date and end_date and end_date < start_date:
            raise BadRequest("End date must not be before start date")

    def get(self, contract_id: int, user: User) -> Contract:
        contract = self.db.query(Contract).filter(Contract.id == contract_id).first()
        if contract is None:
            raise NotFound("Contract not found")
        if not can_access(user, contract):
            raise Forbidden("You do not have access to this contract")
        return contract

    def create(self, data: dict, user: User) -> Contract:
        if data.get("type") not in CONTRACT_TYPES:
            raise BadRequest(f"Invalid contract type: {data.get('type')}")
        owner_id = data.get("owner_id") or user.id
        self._check_refs(data["partner_id"], owner_id)
        start_date = as_utc(data.get("start_date"))
        end_date = as_utc(data.get("end_date"))
        self._check_dates(start_date, end_date)

        number = next_contract_number(self.db, self.number_prefix, self.clock().year)
        contract = Contract(
            contract_number=number,
            title=data["title"],
            description=data.get("description"),
            type=data["type"],
            status="DRAFT",
            start_date=start_date,
            end_date=end_date,
            notice_period_days=data.get("notice_period_days"),
            auto_renewal=bool(data.get("auto_renewal", False)),
            value=data.get("value"),
            currency=data.get("currency") or "EUR",
            partner_id=data["partner_id"],
            owner_id=owner_id,
            created_by_id=user.id,
        )
        self.db.add(contract)
        self.db.flush()

        if end_date is not None:
            # commits the contract together with its reminders
            self.reminders.auto_generate(contract.id, end_date)
        else:
            self.db.commit()
        self.db.refresh(contract)
        logger.info("Contract %s created by user %s", contract.contract_number, user.id)
        return contract

    def update(self, contract_id: int, changes: dict, user: User, context: AuditContext) -> Contract:
        contract = self.get(contract_id, user)
        if contract.status == "ARCHIVED":
            raise BadRequest("Archived contracts cannot be changed")

        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        for key in _REQUIRED_FIELDS:
            if key in changes and changes[key] is None:
                raise BadRequest(f"{key} cannot be empty")
        for key in ("start_date", "end_date"):
            if key in changes:
                changes[key] = as_utc(changes[key])
        if "type" in changes and changes["type"] not in CONTRACT_TYPES:
            raise BadRequest(f"Invalid contract type: {changes['type']}")
        self._check_refs(changes.get("partner_id"), changes.get("owner_id"))
        self._check_dates(
            changes.get("start_date", contract.start_date),
            changes.get("end_date", contract.end_date),
        )

        old = _snapshot(contract, changes)
        end_date_changed = "end_date" in changes and changes["end_date"] != contract.end_date
        for key, value in changes.items():
            setattr(contract, key, value)

        if end_date_changed:
            self.reminders.replace_expiration_ladder(contract.id, contract.end_date)
        else:
            self.db.commit()
        self.db.refresh(contract)

        if self.recorder is not None and changes:
            self.recorder.record(
                "UPDATE", "Contract", contract.id, context,
                old_value=old, new_value=_snapshot(contract, changes),
            )
        return contract

    def update_status(self, contract_id: int, new_status: str, user: User, context: AuditContext) -> Contract:
        contract = self.get(contract_id, user)
        old_status = contract.status
        if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
            raise BadRequest(f"Cannot change status from {old_status} to {new_status}")

        contract.status = new_status
        self.db.commit()
        self.db.refresh(contract)
        logger.info("Contract %s: %s -> %s by user %s", contract.id, old_status, new_status, user.id)

        if self.recorder is not None:
            self.recorder.record(
                "UPDATE", "Contract", contract.id, context,
                old_value={"status": old_status}, new_value={"status": new_status},
            )
        return contract

    def assign(
        self,
        contract_id: int,
        owner_id: int,
        user: User,
        context: AuditContext,
        reason: Optional[str] = None,
    ) -> Contract:
        """Hand the contract to another ACTIVE user.  ADMIN and MANAGER only."""
        if user.role not in ("ADMIN", "MANAGER"):
            raise Forbidden("Only administrators and managers can assign contracts")
        contract = self.get(contract_id, user)

        new_owner = self.db.query(User).filter(User.id == owner_id).first()
        if new_owner is None:
            raise NotFound("Target user not found")
        if not new_owner.is_active or new_owner.status != "ACTIVE":
            raise Forbidden("Target user is not active")

        old_owner_id = contract.owner_id
        if old_owner_id == owner_id:
            return contract

        contract.owner_id = owner_id
        self.db.commit()
        self.db.refresh(contract)
        logger.info(
            "Contract %s assigned from user %s to user %s by user %s",
            contract.id, old_owner_id, owner_id, user.id,
        )

        if self.recorder is not None:
            new_value = {"owner_id": owner_id, "owner_name": new_owner.full_name, "action": "assignment"}
            if reason:
                new_value["reason"] = reason
            self.recorder.record(
                "UPDATE", "Contract", contract.id, context,
                old_value={"owner_id": old_owner_id, "action": "assignment"},
                new_value=new_value,
            )
        return contract

    def remove(self, contract_id: int, user: User, context: AuditContext) -> None:
        """Delete a DRAFT contract with its reminders.  Documents must go first."""
        contract = self.get(contract_id, user)
        if contract.status != "DRAFT":
            raise Forbidden("Only draft contracts can be deleted")
        if self.db.query(Document.id).filter(Document.contract_id == contract.id).first() is not None:
            raise Conflict("Delete the contract's documents first")

        old = _snapshot(contract, ("contract_number", "title", "type", "status", "partner_id", "value"))
        self.db.query(Reminder).filter(Reminder.contract_id == contract.id).delete(synchronize_session=False)
        self.db.delete(contract)
        self.db.commit()
        logger.info("Contract %s deleted by user %s", old["contract_number"], user.id)

        if self.recorder is not None:
            self.recorder.record("DELETE", "Contract", contract_id, context, old_value=old)
