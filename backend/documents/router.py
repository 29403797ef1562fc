# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Document endpoints – upload, download and the trash.

Soft delete is open to editors of the contract; restore needs ADMIN or
MANAGER; the trash listing and permanent delete are ADMIN only.
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from audit.route import (
    audit_create,
    audit_delete,
    audit_download,
    audit_update,
    audited_route_class,
)
from contracts.service import ContractService
from core.security import get_current_user, require_admin, require_editor, require_roles
from database import get_db
from documents.schemas import DocumentRow
from documents.service import DocumentService
from models.user import User


def _upload_result(call):
    return call.result


def _path_contract_id(call):
    return call.path_params.get("contract_id")


AUDIT_RULES = {
    "upload_document": audit_create("Document", new_value=_upload_result, contract_id=_path_contract_id),
    "download_document": audit_download("Document"),
    "delete_document": audit_delete("Document"),
    "restore_document": audit_update("Document", new_value=lambda call: {"restored": True}),
    "permanently_delete_document": audit_delete("Document", new_value=lambda call: {"permanent": True}),
}

router = APIRouter(prefix="/documents", tags=["documents"], route_class=audited_route_class(AUDIT_RULES))


def get_document_service(request: Request, db: Session = Depends(get_db)) -> DocumentService:
    state = request.app.state
    return DocumentService(
        db,
        state.storage,
        max_upload_bytes=state.settings.max_upload_bytes,
        clock=state.clock,
    )


@router.post(
    "/contract/{contract_id}",
    response_model=DocumentRow,
    status_code=status.HTTP_201_CREATED,
)
def upload_document(
    contract_id: int,
    file: UploadFile = File(...),
    is_main_document: bool = Form(False),
    current_user: User = Depends(require_editor),
    db: Session = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    ContractService(db).get(contract_id, current_user)
    # one byte over the limit is enough to reject
    data = file.file.read(service.max_upload_bytes + 1)
    return service.upload(
        contract_id,
        file.filename or "file",
        data,
        file.content_type,
        is_main_document,
        current_user,
    )


@router.get("/trash", response_model=list[DocumentRow])
def list_trash(
    current_user: User = Depends(require_admin),
    service: DocumentService = Depends(get_document_service),
):
    return service.list_deleted()


@router.get("/{id}/download")
def download_document(
    id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    document = service.get(id)
    ContractService(db).get(document.contract_id, current_user)
    return Response(
        content=service.read(document),
        media_type=document.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(document.original_name)}"},
    )


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    id: int,
    current_user: User = Depends(require_editor),
    db: Session = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    """Move the document to the trash; the retention sweep purges it later."""
    document = service.get(id)
    ContractService(db).get(document.contract_id, current_user)
    service.soft_delete(id, current_user)


@router.post("/{id}/restore", response_model=DocumentRow)
def restore_document(
    id: int,
    current_user: User = Depends(require_roles("ADMIN", "MANAGER")),
    service: DocumentService = Depends(get_document_service),
):
    return service.restore(id)


@router.delete("/{id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
def permanently_delete_document(
    id: int,
    current_user: User = Depends(require_admin),
    service: DocumentService = Depends(get_document_service),
):
    service.permanent_delete(id)
