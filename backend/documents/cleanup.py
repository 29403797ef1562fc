# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Document retention sweep.

Soft-deleted documents older than ``retention_days`` lose their stored bytes
and then their row.  Each document is purged in its own transaction; one
failure is logged and counted, and the sweep moves on.  Every run ends with
one summary audit entry attributed to the system user.
"""

from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from audit.recorder import AuditContext, AuditRecorder
from auth.service import get_or_create_system_user
from core.logger import logger
from database import utcnow
from documents.storage import FileStorage
from models.document import Document


class RetentionSweeper:
    def __init__(
        self,
        db: Session,
        storage: FileStorage,
        retention_days: int,
        system_user_email: str,
        recorder: Optional[AuditRecorder] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.storage = storage
        self.retention_days = retention_days
        self.system_user_email = system_user_email
        self.recorder = recorder
        self.clock = clock

    def cutoff(self):
        return self.clock() - timedelta(days=self.retention_days)

    def run(self) -> dict:
        now = self.clock()
        expired = (
            self.db.query(Document)
            .filter(Document.deleted_at.isnot(None), Document.deleted_at < self.cutoff())
            .all()
        )

        processed = failed = 0
        for document in expired:
            doc_id, path = document.id, document.storage_path
            try:
                self.storage.delete(path)
                self.db.delete(document)
                self.db.commit()
                processed += 1
            except Exception:
                self.db.rollback()
                failed += 1
                logger.exception("Retention sweep failed for document %s (%s)", doc_id, path)

        logger.info(
            "Retention sweep: %d purged, %d failed (retention %d days)",
            processed, failed, self.retention_days,
        )

        if self.recorder is not None:
            system_user = get_or_create_system_user(self.db, self.system_user_email)
            self.recorder.record(
                "DELETE",
                "SystemCleanup",
                "scheduled-cleanup",
                AuditContext(actor_id=system_user.id),
                new_value={
                    "documentsDeleted": processed,
                    "documentsFailed": failed,
                    "retentionDays": self.retention_days,
                    "executedAt": now.isoformat(),
                },
            )
        return {"processed": processed, "failed": failed}

    def stats(self) -> dict:
        deleted = self.db.query(Document).filter(Document.deleted_at.isnot(None))
        return {
            "soft_deleted": deleted.count(),
            "pending_purge": deleted.filter(Document.deleted_at < self.cutoff()).count(),
            "retention_days": self.retention_days,
        }
