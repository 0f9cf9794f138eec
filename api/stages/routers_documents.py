# api/stages/routers_documents.py
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import Response

from .auth import get_current_principal
from .database import get_db
from .errors import NotFound
from .models import Demande, Document
from .policy import Action, Principal, ensure_can
from .schemas import DocumentOut, envelope
from .storage import BlobStore, get_blob_store
from .utils import build_storage_path, clean_filename, guess_content_type, read_upload_validated
from .visibility import visible_documents

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


# =====================================================
# LISTE
#    admin/RH : tout ; les autres : leurs documents + les publics
# =====================================================
@router.get("")
def list_documents(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    query = db.query(Document)
    if not principal.is_staff:
        query = query.filter(or_(Document.owner_id == principal.id, Document.is_public.is_(True)))

    data = [DocumentOut.model_validate(d) for d in visible_documents(principal, query.all())]
    return envelope(data, total=len(data))


# =====================================================
# UPLOAD
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    type: str = Form("document"),
    demande_id: Optional[str] = Form(None),
    is_public: bool = Form(False),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    blobs: BlobStore = Depends(get_blob_store),
):
    """
    Dépose un fichier (max MAX_UPLOAD_MB) :
    - si demande_id est fourni, l'appelant doit avoir accès à la demande
    - le fichier est écrit dans le stockage sous <user_id>/
    - si l'enregistrement en base échoue, le fichier est retiré du stockage
    """
    if demande_id:
        demande = db.get(Demande, demande_id)
        if demande is None:
            raise NotFound("Demande non trouvée")
        ensure_can(principal, Action.READ, demande)

    data = await read_upload_validated(file)
    path = build_storage_path(principal.id, file.filename)
    blobs.put(path, data)

    document = Document(
        name=file.filename or "document",
        doc_type=type or "document",
        mime_type=file.content_type or guess_content_type(file.filename),
        size_bytes=len(data),
        storage_path=path,
        owner_id=principal.id,
        demande_id=demande_id or None,
        is_public=is_public,
    )
    try:
        db.add(document)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error("Enregistrement du document échoué, retrait de %s", path)
        blobs.remove(path)
        raise

    db.refresh(document)
    return envelope(DocumentOut.model_validate(document), message="Document uploadé avec succès")


# =====================================================
# TÉLÉCHARGEMENT
#    GET /documents/{document_id}/download
# =====================================================
@router.get("/{document_id}/download")
def download_document(
    document_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    blobs: BlobStore = Depends(get_blob_store),
):
    """
    Renvoie le fichier avec :
    - Content-Disposition pour forcer le téléchargement sous le bon nom
    - Access-Control-Expose-Headers pour que le front puisse lire cet header
    """
    document = db.get(Document, document_id)
    if not document:
        raise NotFound("Document non trouvé")
    ensure_can(principal, Action.READ, document)

    content = blobs.get(document.storage_path)
    ascii_name = clean_filename(document.name)

    return Response(
        content=content,
        media_type=document.mime_type or guess_content_type(document.name),
        headers={
            "Content-Disposition": (
                f'attachment; filename="{ascii_name}"; '
                f"filename*=UTF-8''{quote(document.name)}"
            ),
            "Access-Control-Expose-Headers": "Content-Disposition",
        },
    )
