# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Job bodies shared by the daily scheduler and the ``/admin/jobs/*`` triggers.

Each function opens its own session from the app's session factory and
returns ``{"processed": n, "failed": m}``.
"""

from auth.service import AuthService
from core.scheduler import DailyScheduler
from deadlines.service import ReminderService
from documents.cleanup import RetentionSweeper


def run_reminder_dispatch(state) -> dict:
    db = state.session_factory()
    try:
        return ReminderService(db, email=state.email, clock=state.clock).dispatch_due()
    finally:
        db.close()


def build_sweeper(state, db) -> RetentionSweeper:
    return RetentionSweeper(
        db,
        state.storage,
        retention_days=state.settings.retention_days,
        system_user_email=state.settings.system_user_email,
        recorder=state.audit_recorder,
        clock=state.clock,
    )


def run_document_cleanup(state) -> dict:
    db = state.session_factory()
    try:
        return build_sweeper(state, db).run()
    finally:
        db.close()


def run_token_cleanup(state) -> dict:
    db = state.session_factory()
    try:
        service = AuthService(
            db,
            state.settings,
            state.password_hasher,
            state.totp,
            state.secret_box,
            state.email,
            clock=state.clock,
        )
        return {"processed": service.cleanup_expired_tokens(), "failed": 0}
    finally:
        db.close()


def build_scheduler(state) -> DailyScheduler:
    settings = state.settings
    scheduler = DailyScheduler(clock=state.clock)
    scheduler.add_job("reminder-dispatch", lambda: run_reminder_dispatch(state), settings.reminder_job_time)
    scheduler.add_job("document-cleanup", lambda: run_document_cleanup(state), settings.cleanup_job_time)
    scheduler.add_job("token-cleanup", lambda: run_token_cleanup(state), settings.cleanup_job_time)
    return scheduler
