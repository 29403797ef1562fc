"""Tests for file storage, uploads, the trash and the retention sweep."""

from datetime import timedelta

import pytest

from core.errors import BadRequest, Conflict, NotFound
from documents.cleanup import RetentionSweeper
from documents.service import DocumentService, detect_mime_type, sanitize_filename
from documents.storage import LocalFileStorage
from models.audit_log import AuditLog
from models.document import Document
from models.user import User

PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"


@pytest.fixture
def owner(make_user):
    return make_user("docs@example.com", role="MANAGER")


@pytest.fixture
def contract(make_contract, owner):
    return make_contract(owner)


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(str(tmp_path / "store"))


@pytest.fixture
def service(db, storage, clock):
    return DocumentService(db, storage, max_upload_bytes=1024, clock=clock)


class TestLocalFileStorage:
    def test_put_get_stat_delete(self, storage):
        storage.put("2026/1/a.txt", b"hello")
        assert storage.get("2026/1/a.txt") == b"hello"
        assert storage.stat("2026/1/a.txt").size == 5

        storage.delete("2026/1/a.txt")
        assert storage.stat("2026/1/a.txt") is None
        with pytest.raises(FileNotFoundError):
            storage.get("2026/1/a.txt")
        storage.delete("2026/1/a.txt")

    @pytest.mark.parametrize("key", ["../escape.txt", "2026/../../escape.txt", "/etc/passwd"])
    def test_keys_cannot_escape_root(self, storage, key):
        with pytest.raises(ValueError):
            storage.put(key, b"x")


class TestDetection:
    def test_magic_bytes_win_over_claimed_type(self):
        assert detect_mime_type(PDF, "image/png") == "application/pdf"

    def test_text_trusted_only_without_nul(self):
        assert detect_mime_type(b"a,b\n1,2\n", "text/csv; charset=utf-8") == "text/csv"
        assert detect_mime_type(b"a\x00b", "text/plain") is None

    def test_sanitize_filename(self):
        assert sanitize_filename("../../etc/pass wd") == "pass_wd"
        assert sanitize_filename("C:\\Users\\me\\Vertrag März.pdf") == "Vertrag_M_rz.pdf"


class TestUpload:
    def test_pdf_upload_is_stored(self, service, storage, contract, owner, clock):
        doc = service.upload(contract.id, "lease.pdf", PDF, "application/octet-stream", True, owner)
        assert doc.mime_type == "application/pdf"
        assert doc.version == 1
        assert doc.is_main_document
        assert doc.storage_path.startswith(f"{clock().year}/{contract.id}/")
        assert storage.get(doc.storage_path) == PDF
        assert service.read(doc) == PDF

    def test_same_name_becomes_next_version(self, service, contract, owner):
        first = service.upload(contract.id, "lease.pdf", PDF, None, True, owner)
        second = service.upload(contract.id, "lease.pdf", PDF + b"\n", None, True, owner)
        other = service.upload(contract.id, "annex.pdf", PDF, None, False, owner)
        assert (first.version, second.version, other.version) == (1, 2, 1)

        service.db.refresh(first)
        assert not first.is_main_document
        assert second.is_main_document

    @pytest.mark.parametrize(
        "data, claimed",
        [
            (b"MZ\x90\x00\x03\x00\x00\x00\x04\x00\x00\x00\xff\xff", "application/pdf"),
            (b"text\x00with nul", "text/plain"),
            (b"", "text/plain"),
            (b"x" * 2048, "text/plain"),
        ],
    )
    def test_rejected_uploads_store_nothing(self, service, storage, contract, owner, db, data, claimed):
        with pytest.raises(BadRequest):
            service.upload(contract.id, "evil.pdf", data, claimed, False, owner)
        assert db.query(Document).count() == 0
        assert not any(p.is_file() for p in storage.root.rglob("*"))

    def test_missing_bytes_is_not_found(self, service, storage, contract, owner):
        doc = service.upload(contract.id, "lease.pdf", PDF, None, False, owner)
        storage.delete(doc.storage_path)
        with pytest.raises(NotFound):
            service.read(doc)


class TestTrash:
    def test_soft_delete_and_restore(self, service, contract, owner):
        doc = service.upload(contract.id, "lease.pdf", PDF, None, True, owner)
        service.soft_delete(doc.id, owner)
        with pytest.raises(NotFound):
            service.get(doc.id)
        assert [d.id for d in service.list_deleted()] == [doc.id]

        restored = service.restore(doc.id)
        assert restored.deleted_at is None
        assert not restored.is_main_document
        with pytest.raises(Conflict):
            service.restore(doc.id)

    def test_permanent_delete_removes_bytes(self, service, storage, contract, owner, db):
        doc = service.upload(contract.id, "lease.pdf", PDF, None, False, owner)
        path = doc.storage_path
        service.permanent_delete(doc.id)
        assert storage.stat(path) is None
        assert db.query(Document).count() == 0

    def test_version_is_not_reissued_after_purge(self, service, contract, owner):
        first = service.upload(contract.id, "lease.pdf", PDF, None, False, owner)
        service.upload(contract.id, "lease.pdf", PDF + b"\n", None, False, owner)
        service.permanent_delete(first.id)
        third = service.upload(contract.id, "lease.pdf", PDF + b"\n\n", None, False, owner)
        assert third.version == 3


class TestRetentionSweep:
    def _trash(self, service, contract, owner, clock, days_ago, name):
        doc = service.upload(contract.id, name, PDF, None, False, owner)
        doc.deleted_at = clock() - timedelta(days=days_ago)
        doc.deleted_by_id = owner.id
        service.db.commit()
        return doc

    def test_purges_only_expired_documents(self, app, service, storage, contract, owner, db, clock, settings):
        old = self._trash(service, contract, owner, clock, 91, "old.pdf")
        recent = self._trash(service, contract, owner, clock, 10, "recent.pdf")
        live = service.upload(contract.id, "live.pdf", PDF, None, False, owner)
        old_path = old.storage_path

        sweeper = RetentionSweeper(
            db, storage, 90, settings.system_user_email, recorder=app.state.audit_recorder, clock=clock
        )
        assert sweeper.stats() == {"soft_deleted": 2, "pending_purge": 1, "retention_days": 90}
        assert sweeper.run() == {"processed": 1, "failed": 0}

        db.expire_all()
        assert {d.id for d in db.query(Document).all()} == {recent.id, live.id}
        assert storage.stat(old_path) is None
        assert storage.stat(recent.storage_path) is not None

        entry = db.query(AuditLog).filter(AuditLog.entity_type == "SystemCleanup").one()
        assert entry.action == "DELETE"
        assert entry.entity_id == "scheduled-cleanup"
        assert entry.new_value["documentsDeleted"] == 1
        assert entry.new_value["retentionDays"] == 90

        system_user = db.get(User, entry.user_id)
        assert system_user.email == settings.system_user_email
        assert not system_user.is_active

    def test_empty_sweep_still_records_summary(self, app, storage, db, clock, settings):
        sweeper = RetentionSweeper(
            db, storage, 90, settings.system_user_email, recorder=app.state.audit_recorder, clock=clock
        )
        assert sweeper.run() == {"processed": 0, "failed": 0}
        sweeper.run()
        rows = db.query(AuditLog).filter(AuditLog.entity_type == "SystemCleanup").all()
        assert len(rows) == 2
        # one system user, reused across runs
        assert db.query(User).filter(User.email == settings.system_user_email).count() == 1
