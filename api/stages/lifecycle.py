"""
Cycle de vie des demandes et des évaluations.

Demandes : pending -> approved | rejected, les deux états finaux.
Évaluations : draft / in_progress / finalized dans n'importe quel ordre,
mais une évaluation finalisée n'est plus modifiable.
"""
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Mapping, Optional

from .errors import EvaluationLocked, InvalidTransition, ValidationError
from .models import Demande, Evaluation
from .policy import Action, Principal, ensure_can
from .utils import utcnow

logger = logging.getLogger(__name__)

REQUEST_TYPES = ("leave", "extension", "tutor_change", "modification")
REQUEST_STATUSES = ("pending", "approved", "rejected")

_REQUEST_TRANSITIONS = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset(),
    "rejected": frozenset(),
}

EVALUATION_TYPES = ("mid_term", "final", "self")
EVALUATION_STATUSES = ("draft", "in_progress", "finalized")
SCORE_FIELDS = ("technical", "interpersonal", "autonomy", "punctuality", "motivation")


# ---------- Demandes ----------


def can_transition(current: str, target: str) -> bool:
    return target in _REQUEST_TRANSITIONS.get(current, frozenset())


def transition_request(
    principal: Principal,
    demande: Demande,
    new_status: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Demande:
    """
    Applique une décision admin/RH sur une demande en attente.
    responded_at est toujours horodaté, commentaire fourni ou non.
    """
    ensure_can(principal, Action.WRITE_STATUS, demande)

    if new_status not in REQUEST_STATUSES:
        raise ValidationError(f"Statut inconnu: {new_status}", field="status")
    if not can_transition(demande.status, new_status):
        raise InvalidTransition(
            f"Transition interdite: {demande.status} -> {new_status}"
        )

    demande.status = new_status
    if comment is not None:
        demande.response_comment = comment
    demande.responder_id = principal.id
    demande.responded_at = now or utcnow()

    logger.info(
        "Demande %s passée à %s par %s", demande.id, new_status, principal.id
    )
    return demande


def comment_request(principal: Principal, demande: Demande, comment: str) -> Demande:
    """Commentaire seul (tuteur assigné ou admin/RH), sans changer le statut."""
    ensure_can(principal, Action.COMMENT, demande)
    demande.response_comment = comment
    return demande


# ---------- Évaluations ----------


def compute_overall_score(scores: Mapping[str, float]) -> float:
    """Moyenne des cinq notes, arrondie au dixième (arrondi commercial)."""
    total = sum(Decimal(str(scores[name])) for name in SCORE_FIELDS)
    mean = total / Decimal(len(SCORE_FIELDS))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def refresh_overall_score(evaluation: Evaluation) -> Evaluation:
    evaluation.overall_score = compute_overall_score(
        {name: getattr(evaluation, name) for name in SCORE_FIELDS}
    )
    return evaluation


def ensure_editable(evaluation: Evaluation) -> None:
    if evaluation.status == "finalized":
        raise EvaluationLocked()


def apply_evaluation_changes(
    principal: Principal, evaluation: Evaluation, changes: Mapping[str, object]
) -> Evaluation:
    """
    Met à jour une évaluation non finalisée et recalcule la note globale.
    Le passage à "finalized" est permis ; après lui, plus rien.
    """
    ensure_can(principal, Action.UPDATE, evaluation)
    ensure_editable(evaluation)

    if "status" in changes and changes["status"] not in EVALUATION_STATUSES:
        raise ValidationError(f"Statut inconnu: {changes['status']}", field="status")

    for field, value in changes.items():
        setattr(evaluation, field, value)

    if evaluation.period_end < evaluation.period_start:
        raise ValidationError(
            "La fin de période doit suivre le début", field="period_end"
        )

    return refresh_overall_score(evaluation)


def ensure_deletable(principal: Principal, evaluation: Evaluation) -> None:
    ensure_can(principal, Action.DELETE, evaluation)
    if evaluation.status == "finalized" and not principal.is_staff:
        raise EvaluationLocked()


# ---------- Statistiques (tableau de bord RH) ----------


def _score_band(score: float) -> str:
    if score >= 16:
        return "excellent"
    if score >= 14:
        return "very_good"
    if score >= 12:
        return "good"
    if score >= 10:
        return "fair"
    return "insufficient"


def evaluation_stats(evaluations: Iterable[Evaluation]) -> Dict[str, object]:
    rows = list(evaluations)
    by_status: Dict[str, int] = {}
    by_type: Dict[str, int] = {}
    distribution: Dict[str, int] = {}

    for ev in rows:
        by_status[ev.status] = by_status.get(ev.status, 0) + 1
        by_type[ev.type] = by_type.get(ev.type, 0) + 1

    # les notes à 0 sont des évaluations pas encore remplies
    scored = [ev.overall_score for ev in rows if (ev.overall_score or 0) > 0]
    for score in scored:
        band = _score_band(score)
        distribution[band] = distribution.get(band, 0) + 1

    average = round(sum(scored) / len(scored), 2) if scored else 0.0

    return {
        "total": len(rows),
        "by_status": by_status,
        "by_type": by_type,
        "average_score": average,
        "score_distribution": distribution,
    }
