# api/stages/routers_demandes.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .audit import log_action
from .auth import get_current_principal
from .database import get_db
from .errors import NotFound, ValidationError
from .lifecycle import comment_request, transition_request
from .models import Demande, DemandeDocument, Document, Stagiaire
from .policy import Action, Principal, Resource, Role, can_access, ensure_can, filter_visible
from .schemas import (
    DemandeCreate,
    DemandeDocumentOut,
    DemandeOut,
    DemandeUpdate,
    DocumentOut,
    RequestDocumentOut,
    RequiredDocumentsIn,
    envelope,
)
from .visibility import documents_for_request

router = APIRouter(prefix="/requests", tags=["requests"])


def _get_demande_or_404(db: Session, demande_id: str) -> Demande:
    demande = db.get(Demande, demande_id)
    if not demande:
        raise NotFound("Demande non trouvée")
    return demande


def _own_assignment(db: Session, principal: Principal) -> Optional[Stagiaire]:
    return (
        db.query(Stagiaire)
        .filter(Stagiaire.user_id == principal.id)
        .order_by(Stagiaire.created_at.desc())
        .first()
    )


# =====================================================
# LISTE DES DEMANDES
#    admin/RH : toutes ; tuteur : celles qu'il suit ;
#    stagiaire : les siennes
# =====================================================
@router.get("")
def list_demandes(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    type: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    stmt = select(Demande).join(Stagiaire, Demande.stagiaire_id == Stagiaire.id)

    if principal.role == Role.TUTOR.value:
        stmt = stmt.where(Demande.tutor_id == principal.id)
    elif principal.role == Role.INTERN.value:
        stmt = stmt.where(Stagiaire.user_id == principal.id)

    if status_filter:
        stmt = stmt.where(Demande.status == status_filter)
    if type:
        stmt = stmt.where(Demande.type == type)

    rows = db.execute(stmt.order_by(Demande.created_at.desc())).scalars().all()
    data = [DemandeOut.model_validate(d) for d in filter_visible(principal, rows)]
    return envelope(data, total=len(data))


# =====================================================
# CRÉATION (stagiaire uniquement)
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def create_demande(
    payload: DemandeCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Une demande part toujours en "pending" ; le tuteur est celui de
    l'affectation au moment de la création.
    """
    ensure_can(principal, Action.CREATE, Resource.REQUESTS)

    stagiaire = _own_assignment(db, principal)
    if stagiaire is None:
        raise NotFound("Aucune affectation de stage pour ce compte")

    demande = Demande(
        type=payload.type,
        status="pending",
        stagiaire_id=stagiaire.id,
        tutor_id=stagiaire.tutor_id,
        title=payload.title,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    db.add(demande)
    db.commit()
    db.refresh(demande)
    return envelope(DemandeOut.model_validate(demande), message="Demande créée avec succès")


# =====================================================
# DÉTAIL
# =====================================================
@router.get("/{demande_id}")
def get_demande(
    demande_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    demande = _get_demande_or_404(db, demande_id)
    ensure_can(principal, Action.READ, demande)
    return envelope(DemandeOut.model_validate(demande))


# =====================================================
# DÉCISION / COMMENTAIRE
#    status : admin/RH uniquement, pending -> approved | rejected
#    response_comment seul : admin/RH ou tuteur de la demande
# =====================================================
@router.put("/{demande_id}")
def update_demande(
    demande_id: str,
    payload: DemandeUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    demande = _get_demande_or_404(db, demande_id)
    ensure_can(principal, Action.READ, demande)

    if payload.status is not None:
        previous = demande.status
        transition_request(principal, demande, payload.status, payload.response_comment)
        log_action(
            db,
            entity_type="demande",
            entity_id=demande.id,
            user_id=principal.id,
            action="transition",
            detail=f"{previous} -> {demande.status}",
        )
    else:
        comment_request(principal, demande, payload.response_comment)

    db.commit()
    db.refresh(demande)
    return envelope(DemandeOut.model_validate(demande))


# =====================================================
# DOCUMENTS D'UNE DEMANDE
# =====================================================
@router.get("/{demande_id}/documents")
def list_demande_documents(
    demande_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Documents rattachés directement à la demande + documents fournis via
    la liste des pièces exigées, dédupliqués, du plus récent au plus ancien.
    """
    demande = _get_demande_or_404(db, demande_id)
    ensure_can(principal, Action.LIST_DOCUMENTS, demande)

    direct = db.query(Document).filter(Document.demande_id == demande.id).all()
    links = db.query(DemandeDocument).filter(DemandeDocument.demande_id == demande.id).all()

    items = documents_for_request(principal, demande, direct, links)
    data = [
        RequestDocumentOut(
            **DocumentOut.model_validate(item.document).model_dump(),
            required_document_type=item.required_document_type,
            mandatory=item.mandatory,
        )
        for item in items
    ]
    return envelope(data, demande_id=demande.id, total=len(data))


@router.post("/{demande_id}/documents", status_code=status.HTTP_201_CREATED)
def attach_demande_documents(
    demande_id: str,
    payload: RequiredDocumentsIn,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Déclare les pièces exigées par la demande, avec éventuellement le
    document qui y répond. Réservé au stagiaire propriétaire de la demande.
    """
    demande = _get_demande_or_404(db, demande_id)
    ensure_can(principal, Action.ATTACH_DOCUMENTS, demande)

    links = []
    for idx, item in enumerate(payload.documents):
        if item.document_id is not None:
            document = db.get(Document, item.document_id)
            if document is None or not can_access(principal, Action.READ, document):
                raise ValidationError(
                    f"Document inconnu ou inaccessible: {item.document_id}",
                    field=f"documents.{idx}.document_id",
                )
        link = DemandeDocument(
            demande_id=demande.id,
            document_id=item.document_id,
            required_document_type=item.type,
            mandatory=item.mandatory,
        )
        db.add(link)
        links.append(link)

    db.commit()
    data = [DemandeDocumentOut.model_validate(link) for link in links]
    return envelope(data, message="Documents associés avec succès")

