# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Document service – upload, versioning, download and the trash.

Upload checks
-------------
* Size must be within ``max_upload_bytes``.
* The MIME type is detected from the file's magic bytes; the type the client
  claims is ignored, except for plain text and CSV, which have no magic
  bytes and are accepted only when the content holds no NUL byte.
* The detected type must be on the allow-list.

Every upload of the same original name on the same contract becomes the next
version; marking one document as main clears the flag on its siblings.
"""

import hashlib
import os
import re
import secrets
from typing import Callable, Optional

import filetype
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.errors import BadRequest, Conflict, NotFound
from core.logger import logger
from database import utcnow
from documents.storage import FileStorage
from models.document import Document
from models.user import User

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/tiff",
    "image/webp",
    "text/plain",
    "text/csv",
}

# No magic bytes; trusted from the claimed type when the content looks textual.
TEXT_MIME_TYPES = {"text/plain", "text/csv"}


def sanitize_filename(name: str) -> str:
    base = os.path.basename(name.replace("\\", "/")) or "file"
    return re.sub(r"[^A-Za-z0-9._-]", "_", base)[:100]


def detect_mime_type(data: bytes, claimed_type: Optional[str]) -> Optional[str]:
    kind = filetype.guess(data)
    if kind is not None:
        return kind.mime
    claimed = (claimed_type or "").split(";")[0].strip().lower()
    if claimed in TEXT_MIME_TYPES and b"\x00" not in data:
        return claimed
    return None


class DocumentService:
    def __init__(
        self,
        db: Session,
        storage: FileStorage,
        max_upload_bytes: int,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes
        self.clock = clock

    def get(self, document_id: int, include_deleted: bool = False) -> Document:
        q = self.db.query(Document).filter(Document.id == document_id)
        if not include_deleted:
            q = q.filter(Document.deleted_at.is_(None))
        document = q.first()
        if document is None:
            raise NotFound("Document not found")
        return document

    def upload(
        self,
        contract_id: int,
        filename: str,
        data: bytes,
        claimed_type: Optional[str],
        is_main: bool,
        user: User,
    ) -> Document:
        if not data:
            raise BadRequest("The uploaded file is empty")
        if len(data) > self.max_upload_bytes:
            raise BadRequest(f"File exceeds the maximum size of {self.max_upload_bytes} bytes")

        mime_type = detect_mime_type(data, claimed_type)
        if mime_type is None or mime_type not in ALLOWED_MIME_TYPES:
            logger.warning(
                "Upload rejected for contract %s: claimed=%s detected=%s",
                contract_id, claimed_type, mime_type,
            )
            raise BadRequest(f"File type {mime_type or 'unknown'} is not allowed")

        now = self.clock()
        original_name = os.path.basename(filename.replace("\\", "/")) or "file"
        stored_name = f"{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}_{sanitize_filename(original_name)}"
        key = f"{now.year}/{contract_id}/{stored_name}"

        # max, not count: purged versions must not be reissued
        previous = (
            self.db.query(func.max(Document.version))
            .filter(Document.contract_id == contract_id, Document.original_name == original_name)
            .scalar()
        ) or 0
        if is_main:
            (
                self.db.query(Document)
                .filter(Document.contract_id == contract_id, Document.is_main_document.is_(True))
                .update({Document.is_main_document: False}, synchronize_session=False)
            )

        self.storage.put(key, data, mime_type)
        document = Document(
            filename=stored_name,
            original_name=original_name,
            mime_type=mime_type,
            size=len(data),
            storage_path=key,
            version=previous + 1,
            is_main_document=is_main,
            checksum=hashlib.sha256(data).hexdigest(),
            contract_id=contract_id,
            uploaded_by_id=user.id,
            created_at=now,
        )
        self.db.add(document)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.delete(key)
            raise
        self.db.refresh(document)
        logger.info("Document %s v%d stored for contract %s", document.id, document.version, contract_id)
        return document

    def read(self, document: Document) -> bytes:
        try:
            return self.storage.get(document.storage_path)
        except FileNotFoundError:
            logger.error("Bytes of document %s missing at %s", document.id, document.storage_path)
            raise NotFound("Document content not found")

    def soft_delete(self, document_id: int, user: User) -> Document:
        document = self.get(document_id)
        document.deleted_at = self.clock()
        document.deleted_by_id = user.id
        if document.is_main_document:
            document.is_main_document = False
        self.db.commit()
        return document

    def restore(self, document_id: int) -> Document:
        document = self.get(document_id, include_deleted=True)
        if document.deleted_at is None:
            raise Conflict("Document is not deleted")
        document.deleted_at = None
        document.deleted_by_id = None
        self.db.commit()
        self.db.refresh(document)
        return document

    def list_deleted(self) -> list[Document]:
        return (
            self.db.query(Document)
            .filter(Document.deleted_at.isnot(None))
            .order_by(Document.deleted_at.desc())
            .all()
        )

    def permanent_delete(self, document_id: int) -> None:
        document = self.get(document_id, include_deleted=True)
        self.storage.delete(document.storage_path)
        self.db.delete(document)
        self.db.commit()
        logger.info("Document %s permanently deleted", document_id)
