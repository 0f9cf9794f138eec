# api/stages/routers_stagiaires.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .audit import log_action
from .auth import get_current_principal
from .database import get_db
from .errors import NotFound, ValidationError
from .models import Stagiaire, User
from .policy import Action, Principal, Role, ensure_can, filter_visible
from .schemas import StagiaireOut, StagiaireUpdate, envelope

router = APIRouter(prefix="/interns", tags=["interns"])


def _get_stagiaire_or_404(db: Session, stagiaire_id: str) -> Stagiaire:
    stagiaire = db.get(Stagiaire, stagiaire_id)
    if not stagiaire:
        raise NotFound("Affectation de stage non trouvée")
    return stagiaire


@router.get("")
def list_stagiaires(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    tutor_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    admin/RH : toutes les affectations ; tuteur : ses stagiaires ;
    stagiaire : la sienne.
    """
    query = db.query(Stagiaire)
    if principal.role == Role.TUTOR.value:
        query = query.filter(Stagiaire.tutor_id == principal.id)
    elif principal.role == Role.INTERN.value:
        query = query.filter(Stagiaire.user_id == principal.id)

    if status_filter:
        query = query.filter(Stagiaire.status == status_filter)
    if tutor_id:
        query = query.filter(Stagiaire.tutor_id == tutor_id)

    rows = query.order_by(Stagiaire.created_at.desc()).all()
    data = [StagiaireOut.model_validate(s) for s in filter_visible(principal, rows)]
    return envelope(data, total=len(data))


@router.get("/{stagiaire_id}")
def get_stagiaire(
    stagiaire_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    stagiaire = _get_stagiaire_or_404(db, stagiaire_id)
    ensure_can(principal, Action.READ, stagiaire)
    return envelope(StagiaireOut.model_validate(stagiaire))


@router.put("/{stagiaire_id}")
def update_stagiaire(
    stagiaire_id: str,
    payload: StagiaireUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Mise à jour de l'affectation par admin/RH ou par le tuteur en charge.
    Changer de tuteur reste réservé à admin/RH ; le nouveau tuteur doit
    être un tuteur actif.
    """
    stagiaire = _get_stagiaire_or_404(db, stagiaire_id)
    ensure_can(principal, Action.UPDATE, stagiaire)

    changes = payload.model_dump(exclude_unset=True)
    for field in ("company_name", "position", "status"):
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} ne peut pas être vide", field=field)

    if "tutor_id" in changes and changes["tutor_id"] != stagiaire.tutor_id:
        ensure_can(principal, Action.REASSIGN_TUTOR, stagiaire)
        new_tutor_id = changes["tutor_id"]
        if new_tutor_id is not None:
            tutor = db.get(User, new_tutor_id)
            if tutor is None or tutor.role != Role.TUTOR.value or not tutor.is_active:
                raise ValidationError("Tuteur invalide", field="tutor_id")

    start = changes.get("start_date", stagiaire.start_date)
    end = changes.get("end_date", stagiaire.end_date)
    if start and end and end < start:
        raise ValidationError("end_date doit être postérieure à start_date", field="end_date")

    summary = []
    for field, value in changes.items():
        if getattr(stagiaire, field) != value:
            summary.append(f"{field}: {getattr(stagiaire, field)} -> {value}")
        setattr(stagiaire, field, value)

    log_action(
        db,
        entity_type="stagiaire",
        entity_id=stagiaire.id,
        user_id=principal.id,
        action="update",
        detail="; ".join(summary) or None,
    )
    db.commit()
    db.refresh(stagiaire)
    return envelope(StagiaireOut.model_validate(stagiaire))
