"""
Choix du tuteur d'un nouveau stagiaire.

La stratégie par défaut prend le tuteur actif qui suit le moins de
stagiaires ; elle ne tient compte ni d'une capacité maximale ni de la
spécialité, d'où l'interface pour pouvoir la remplacer.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import Stagiaire, User
from .policy import Role


@dataclass(frozen=True)
class TutorLoad:
    tutor_id: str
    assigned: int


class TutorAssignmentStrategy(Protocol):
    def choose(self, loads: Sequence[TutorLoad]) -> Optional[str]: ...


class LeastLoadedTutorStrategy:
    """En cas d'égalité, le premier tuteur de la liste l'emporte."""

    def choose(self, loads: Sequence[TutorLoad]) -> Optional[str]:
        best: Optional[TutorLoad] = None
        for load in loads:
            if best is None or load.assigned < best.assigned:
                best = load
        return best.tutor_id if best is not None else None


def tutor_loads(db: Session) -> List[TutorLoad]:
    """Tuteurs actifs avec leur nombre de stagiaires, par ordre de création."""
    counts = (
        select(Stagiaire.tutor_id, func.count(Stagiaire.id).label("assigned"))
        .where(Stagiaire.tutor_id.is_not(None))
        .group_by(Stagiaire.tutor_id)
        .subquery()
    )
    stmt = (
        select(User.id, func.coalesce(counts.c.assigned, 0))
        .outerjoin(counts, counts.c.tutor_id == User.id)
        .where(User.role == Role.TUTOR.value, User.is_active.is_(True))
        .order_by(User.created_at.asc(), User.id.asc())
    )
    return [TutorLoad(tutor_id=row[0], assigned=int(row[1])) for row in db.execute(stmt)]


default_strategy: TutorAssignmentStrategy = LeastLoadedTutorStrategy()


def get_assignment_strategy() -> TutorAssignmentStrategy:
    return default_strategy
