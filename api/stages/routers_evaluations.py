# api/stages/routers_evaluations.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .audit import log_action
from .auth import get_current_principal
from .database import get_db
from .errors import NotFound, ValidationError
from .lifecycle import (
    apply_evaluation_changes,
    ensure_deletable,
    evaluation_stats,
    refresh_overall_score,
)
from .models import Evaluation, Stagiaire, User
from .policy import Action, Principal, Resource, Role, ensure_can, filter_visible
from .schemas import EvaluationCreate, EvaluationOut, EvaluationUpdate, envelope

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


def _get_evaluation_or_404(db: Session, evaluation_id: str) -> Evaluation:
    evaluation = db.get(Evaluation, evaluation_id)
    if not evaluation:
        raise NotFound("Évaluation non trouvée")
    return evaluation


def _scoped_query(principal: Principal):
    """Pré-filtre SQL selon le rôle ; la politique reste appliquée ensuite."""
    stmt = select(Evaluation).join(Stagiaire, Evaluation.stagiaire_id == Stagiaire.id)
    if principal.role == Role.TUTOR.value:
        stmt = stmt.where(Evaluation.evaluator_id == principal.id)
    elif principal.role == Role.INTERN.value:
        stmt = stmt.where(Stagiaire.user_id == principal.id)
    return stmt


@router.get("")
def list_evaluations(
    stagiaire_id: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    admin/RH : toutes ; tuteur : celles qu'il a rédigées ;
    stagiaire : celles de sa propre affectation.
    """
    stmt = _scoped_query(principal)
    if stagiaire_id:
        stmt = stmt.where(Evaluation.stagiaire_id == stagiaire_id)
    if status_filter:
        stmt = stmt.where(Evaluation.status == status_filter)

    rows = db.execute(stmt.order_by(Evaluation.created_at.desc())).scalars().all()
    data = [EvaluationOut.model_validate(e) for e in filter_visible(principal, rows)]
    return envelope(data, total=len(data))


@router.get("/stats")
def get_evaluation_stats(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Répartition par statut / type, note moyenne et distribution (admin/RH)."""
    ensure_can(principal, Action.STATS, Resource.EVALUATIONS)
    rows = db.query(Evaluation).all()
    return envelope(evaluation_stats(rows))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_evaluation(
    payload: EvaluationCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Création par un tuteur, RH ou admin. Un tuteur est toujours
    l'évaluateur de ce qu'il crée ; admin/RH peuvent désigner un autre
    évaluateur (tuteur, RH ou admin actif).
    """
    ensure_can(principal, Action.CREATE, Resource.EVALUATIONS)

    stagiaire = db.get(Stagiaire, payload.stagiaire_id)
    if stagiaire is None:
        raise ValidationError("Affectation de stage inconnue", field="stagiaire_id")

    evaluator_id = principal.id
    if payload.evaluator_id and payload.evaluator_id != principal.id:
        if not principal.is_staff:
            raise ValidationError(
                "Seuls admin/RH peuvent désigner un autre évaluateur", field="evaluator_id"
            )
        evaluator = db.get(User, payload.evaluator_id)
        if (
            evaluator is None
            or not evaluator.is_active
            or evaluator.role not in (Role.ADMIN.value, Role.RH.value, Role.TUTOR.value)
        ):
            raise ValidationError("Évaluateur invalide", field="evaluator_id")
        evaluator_id = evaluator.id

    evaluation = Evaluation(
        **payload.model_dump(exclude={"evaluator_id"}),
        evaluator_id=evaluator_id,
        created_by=principal.id,
    )
    refresh_overall_score(evaluation)
    db.add(evaluation)
    db.commit()
    db.refresh(evaluation)
    return envelope(EvaluationOut.model_validate(evaluation), message="Évaluation créée avec succès")


@router.get("/{evaluation_id}")
def get_evaluation(
    evaluation_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    evaluation = _get_evaluation_or_404(db, evaluation_id)
    ensure_can(principal, Action.READ, evaluation)
    return envelope(EvaluationOut.model_validate(evaluation))


@router.put("/{evaluation_id}")
def update_evaluation(
    evaluation_id: str,
    payload: EvaluationUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Mise à jour partielle ; la note globale est recalculée.
    Une évaluation finalisée est verrouillée (409).
    """
    evaluation = _get_evaluation_or_404(db, evaluation_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None:
            raise ValidationError(f"{field} ne peut pas être vide", field=field)

    apply_evaluation_changes(principal, evaluation, changes)

    if changes.get("status") == "finalized":
        log_action(
            db,
            entity_type="evaluation",
            entity_id=evaluation.id,
            user_id=principal.id,
            action="finalize",
            detail=f"Note globale {evaluation.overall_score}",
        )
    db.commit()
    db.refresh(evaluation)
    return envelope(EvaluationOut.model_validate(evaluation))


@router.delete("/{evaluation_id}")
def delete_evaluation(
    evaluation_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    evaluation = _get_evaluation_or_404(db, evaluation_id)
    ensure_deletable(principal, evaluation)

    log_action(
        db,
        entity_type="evaluation",
        entity_id=evaluation.id,
        user_id=principal.id,
        action="delete",
        detail=f"Statut au moment de la suppression : {evaluation.status}",
    )
    db.delete(evaluation)
    db.commit()
    return envelope(None, message="Évaluation supprimée avec succès")
