# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Attempt counting and temporary locks.

The same policy class guards password logins (5 attempts / 15 minutes) and
TOTP codes (5 attempts / 10 minutes).  The caller names the counter columns;
the policy bumps them in SQL so parallel failures all land in the count.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, case, null, or_
from sqlalchemy.orm import Session


@dataclass(frozen=True)
class FailureOutcome:
    attempts: int
    last_failed_at: datetime
    locked_until: Optional[datetime]
    just_locked: bool


class LockoutPolicy:
    def __init__(self, max_attempts: int, lock_minutes: int):
        self.max_attempts = max_attempts
        self.lock_duration = timedelta(minutes=lock_minutes)

    def remaining_minutes(self, locked_until: Optional[datetime], now: datetime) -> Optional[int]:
        """Whole minutes (rounded up) left on an active lock, or None if not locked."""
        if locked_until is None or locked_until <= now:
            return None
        return max(1, math.ceil((locked_until - now).total_seconds() / 60))

    def count_failure(
        self,
        db: Session,
        model,
        row_id: int,
        attempts_col,
        locked_col,
        now: datetime,
        last_failed_col=None,
    ) -> FailureOutcome:
        """
        Count one more failure on row *row_id* of *model* and commit.

        The count starts over when the previous lock has expired or, when
        *last_failed_col* is given, when the last failure is older than one
        lock window.  Only consecutive failures inside a window can lock.

        Both steps are single UPDATE statements: the increment is evaluated by
        the database, and the lock is only set by the one statement that finds
        the row at the threshold and unlocked, so ``just_locked`` is true for
        exactly one caller.
        """
        restart = and_(locked_col.isnot(None), locked_col <= now)
        if last_failed_col is not None:
            restart = or_(
                restart,
                and_(last_failed_col.isnot(None), last_failed_col < now - self.lock_duration),
            )

        values = {
            attempts_col: case((restart, 1), else_=attempts_col + 1),
            locked_col: case((restart, null()), else_=locked_col),
        }
        if last_failed_col is not None:
            values[last_failed_col] = now

        row = db.query(model).filter(model.id == row_id)
        row.update(values, synchronize_session=False)
        locked = row.filter(
            attempts_col >= self.max_attempts,
            or_(locked_col.is_(None), locked_col <= now),
        ).update({locked_col: now + self.lock_duration}, synchronize_session=False)
        db.commit()

        attempts, locked_until = db.query(attempts_col, locked_col).filter(model.id == row_id).one()
        return FailureOutcome(attempts, now, locked_until, locked == 1)
