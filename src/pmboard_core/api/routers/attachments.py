"""Feature attachment API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from pmboard_core import crud, schemas

from ...database import get_db
from ...storage import AttachmentStorage, get_storage
from ..lookups import require_feature

logger = logging.getLogger("pmboard-core.attachments")

router = APIRouter(tags=["attachments"])


@router.get("/{project_id}/features/{feature_id}/attachments", response_model=list[schemas.AttachmentResponse])
def list_attachments(
    project_id: UUID,
    feature_id: UUID,
    db: Session = Depends(get_db),
):
    """List a feature's attachments, oldest first."""
    return require_feature(db, project_id, feature_id).attachments


@router.post(
    "/{project_id}/features/{feature_id}/attachments",
    response_model=schemas.AttachmentResponse,
    status_code=201,
)
def upload_attachment(
    project_id: UUID,
    feature_id: UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_storage),
):
    """
    Upload a file (multipart field **file**) and attach it to the feature.

    The file is served afterwards under the returned **url**.
    """
    require_feature(db, project_id, feature_id)
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    content = file.file.read()
    blob = storage.save(file.filename, content)

    try:
        attachment = crud.create_attachment(
            db,
            feature_id=feature_id,
            filename=blob.filename,
            original_name=file.filename,
            mime_type=file.content_type or "application/octet-stream",
            size=blob.size,
            url=blob.url,
        )
    except Exception:
        storage.delete(blob.filename)
        raise

    logger.info(f"Attached '{file.filename}' ({blob.size} bytes) to feature {feature_id}")
    return attachment


@router.delete("/{project_id}/features/{feature_id}/attachments/{attachment_id}", status_code=204)
def delete_attachment(
    project_id: UUID,
    feature_id: UUID,
    attachment_id: UUID,
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_storage),
):
    """Delete an attachment record and then its file."""
    require_feature(db, project_id, feature_id)
    attachment = crud.get_attachment(db, attachment_id, feature_id)
    if not attachment:
        raise HTTPException(status_code=404, detail="Attachment not found")

    filename = attachment.filename
    crud.delete_attachment(db, attachment)
    storage.delete(filename)
