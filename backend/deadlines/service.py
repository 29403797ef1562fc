# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Contract reminders – manual CRUD, the automatic expiration ladder and the
daily dispatch job.

Dispatch rules
--------------
* Due = ``reminder_date <= now``, not yet sent, contract ACTIVE.
* Each email is sent on its own; a failure is logged and the reminder stays
  unsent so the next run retries it.
* Successfully sent ids are marked in one bulk UPDATE after the batch.
"""

import math
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.email import EmailService
from core.errors import BadRequest, NotFound
from core.logger import logger
from database import as_utc, utcnow
from models.contract import Contract
from models.reminder import REMINDER_TYPES, Reminder
from models.user import User

# Days before the end date at which an expiration reminder fires.
EXPIRATION_LADDER_DAYS = (90, 60, 30, 14, 7)


def days_until(end_date: Optional[datetime], now: datetime) -> int:
    if end_date is None:
        return 0
    return max(0, math.ceil((end_date - now).total_seconds() / 86400))


class ReminderService:
    def __init__(self, db: Session, email: Optional[EmailService] = None, clock: Callable = utcnow):
        self.db = db
        self.email = email
        self.clock = clock

    def _get_contract(self, contract_id: int) -> Contract:
        contract = self.db.query(Contract).filter(Contract.id == contract_id).first()
        if contract is None:
            raise NotFound("Contract not found")
        return contract

    def get(self, reminder_id: int) -> Reminder:
        reminder = self.db.query(Reminder).filter(Reminder.id == reminder_id).first()
        if reminder is None:
            raise NotFound("Reminder not found")
        return reminder

    # -- CRUD -----------------------------------------------------------------

    def create(
        self,
        contract_id: int,
        type: str,
        reminder_date: datetime,
        message: Optional[str] = None,
    ) -> Reminder:
        if type not in REMINDER_TYPES:
            raise BadRequest(f"Invalid reminder type: {type}")
        self._get_contract(contract_id)

        reminder = Reminder(
            contract_id=contract_id,
            type=type,
            reminder_date=as_utc(reminder_date),
            message=message,
            is_sent=False,
        )
        self.db.add(reminder)
        self.db.commit()
        self.db.refresh(reminder)
        return reminder

    def list_for_contract(self, contract_id: int) -> list[Reminder]:
        self._get_contract(contract_id)
        return (
            self.db.query(Reminder)
            .filter(Reminder.contract_id == contract_id)
            .order_by(Reminder.reminder_date.asc())
            .all()
        )

    def delete(self, reminder_id: int) -> None:
        reminder = self.get(reminder_id)
        self.db.delete(reminder)
        self.db.commit()

    def upcoming(self, days: int = 30, contract_ids: Optional[list[int]] = None) -> list[dict]:
        """
        Unsent reminders of ACTIVE contracts due within *days*.  Pass
        *contract_ids* to restrict the result to contracts the caller may see.
        """
        now = self.clock()
        q = (
            self.db.query(Reminder, Contract)
            .join(Contract, Reminder.contract_id == Contract.id)
            .filter(
                Reminder.is_sent.is_(False),
                Reminder.reminder_date >= now,
                Reminder.reminder_date <= now + timedelta(days=days),
                Contract.status == "ACTIVE",
            )
        )
        if contract_ids is not None:
            q = q.filter(Contract.id.in_(contract_ids))

        return [
            {
                "id": reminder.id,
                "type": reminder.type,
                "reminder_date": reminder.reminder_date,
                "message": reminder.message,
                "contract_id": contract.id,
                "contract_number": contract.contract_number,
                "contract_title": contract.title,
                "days_until": days_until(reminder.reminder_date, now),
            }
            for reminder, contract in q.order_by(Reminder.reminder_date.asc()).all()
        ]

    # -- expiration ladder ----------------------------------------------------

    def auto_generate(self, contract_id: int, end_date: datetime) -> list[Reminder]:
        """
        Insert the 90/60/30/14/7-day EXPIRATION reminders for *end_date*,
        skipping any that would already be due.  Commits.
        """
        now = self.clock()
        end_date = as_utc(end_date)
        reminders = []
        for offset in EXPIRATION_LADDER_DAYS:
            when = end_date - timedelta(days=offset)
            if when <= now:
                continue
            reminders.append(Reminder(
                contract_id=contract_id,
                type="EXPIRATION",
                reminder_date=when,
                message=f"Contract expires in {offset} days",
                is_sent=False,
            ))
        self.db.add_all(reminders)
        self.db.commit()
        logger.info("Generated %d expiration reminder(s) for contract %s", len(reminders), contract_id)
        return reminders

    def replace_expiration_ladder(self, contract_id: int, end_date: Optional[datetime]) -> list[Reminder]:
        """Drop the unsent EXPIRATION reminders and build a new ladder."""
        (
            self.db.query(Reminder)
            .filter(
                Reminder.contract_id == contract_id,
                Reminder.type == "EXPIRATION",
                Reminder.is_sent.is_(False),
            )
            .delete(synchronize_session=False)
        )
        if end_date is None:
            self.db.commit()
            return []
        return self.auto_generate(contract_id, end_date)

    # -- daily dispatch -------------------------------------------------------

    def dispatch_due(self) -> dict:
        now = self.clock()
        due = (
            self.db.query(Reminder, Contract, User)
            .join(Contract, Reminder.contract_id == Contract.id)
            .outerjoin(User, Contract.owner_id == User.id)
            .filter(
                Reminder.reminder_date <= now,
                Reminder.is_sent.is_(False),
                Contract.status == "ACTIVE",
            )
            .all()
        )

        sent_ids = []
        failed = 0
        for reminder, contract, owner in due:
            if owner is None or not owner.email:
                logger.error("Reminder %s: contract %s has no owner email", reminder.id, contract.id)
                failed += 1
                continue
            try:
                self.email.send_contract_expiration(
                    owner.email,
                    owner.full_name or owner.email,
                    contract.id,
                    contract.title,
                    contract.contract_number,
                    contract.end_date,
                    days_until(contract.end_date, now),
                )
                sent_ids.append(reminder.id)
            except Exception:
                logger.exception("Failed to send reminder %s for contract %s", reminder.id, contract.id)
                failed += 1

        if sent_ids:
            (
                self.db.query(Reminder)
                .filter(Reminder.id.in_(sent_ids))
                .update({Reminder.is_sent: True, Reminder.sent_at: now}, synchronize_session=False)
            )
            self.db.commit()

        logger.info("Reminder dispatch: %d sent, %d failed", len(sent_ids), failed)
        return {"processed": len(sent_ids), "failed": failed}
