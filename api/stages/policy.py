"""
Politique d'accès : qui peut lire, créer, valider ou télécharger quoi.

Le refus est la règle par défaut ; chaque règle ci-dessous est une
autorisation positive, et il suffit qu'une règle accepte pour autoriser.
Le principal est toujours passé explicitement, jamais lu dans un contexte
global.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from .errors import Forbidden
from .models import Demande, Document, Evaluation, Stagiaire


class Role(str, Enum):
    ADMIN = "admin"
    RH = "rh"
    TUTOR = "tutor"
    INTERN = "intern"


STAFF_ROLES = frozenset({Role.ADMIN.value, Role.RH.value})
EVALUATOR_ROLES = frozenset({Role.ADMIN.value, Role.RH.value, Role.TUTOR.value})


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    WRITE_STATUS = "write_status"
    COMMENT = "comment"
    ATTACH_DOCUMENTS = "attach_documents"
    LIST_DOCUMENTS = "list_documents"
    REASSIGN_TUTOR = "reassign_tutor"
    STATS = "stats"
    MANAGE = "manage"


class Resource(str, Enum):
    """Ressources adressées sans instance (création, administration)."""
    REQUESTS = "requests"
    EVALUATIONS = "evaluations"
    USERS = "users"
    AUDIT = "audit"


@dataclass(frozen=True)
class Principal:
    id: str
    email: str
    role: str
    active: bool

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def _owner_of(stagiaire: Optional[Stagiaire]) -> Optional[str]:
    return stagiaire.user_id if stagiaire is not None else None


# ---------- Règles par ressource ----------


def _request_read(p: Principal, demande: Demande) -> bool:
    if p.is_staff:
        return True
    if p.role == Role.TUTOR.value and demande.tutor_id == p.id:
        return True
    return p.role == Role.INTERN.value and _owner_of(demande.stagiaire) == p.id


def _request_create(p: Principal, _resource) -> bool:
    return p.role == Role.INTERN.value


def _request_write_status(p: Principal, _demande: Demande) -> bool:
    return p.is_staff


def _request_comment(p: Principal, demande: Demande) -> bool:
    if p.is_staff:
        return True
    return p.role == Role.TUTOR.value and demande.tutor_id == p.id


def _request_attach(p: Principal, demande: Demande) -> bool:
    return p.role == Role.INTERN.value and _owner_of(demande.stagiaire) == p.id


def _document_read(p: Principal, document: Document) -> bool:
    return document.owner_id == p.id or bool(document.is_public) or p.is_staff


def _evaluation_read(p: Principal, evaluation: Evaluation) -> bool:
    if p.is_staff:
        return True
    if p.role == Role.TUTOR.value and evaluation.evaluator_id == p.id:
        return True
    return p.role == Role.INTERN.value and _owner_of(evaluation.stagiaire) == p.id


def _evaluation_create(p: Principal, _resource) -> bool:
    return p.role in EVALUATOR_ROLES


def _evaluation_write(p: Principal, evaluation: Evaluation) -> bool:
    return p.is_staff or evaluation.evaluator_id == p.id


def _staff_only(p: Principal, _resource) -> bool:
    return p.is_staff


def _admin_only(p: Principal, _resource) -> bool:
    return p.role == Role.ADMIN.value


def _assignment_read(p: Principal, stagiaire: Stagiaire) -> bool:
    if p.is_staff:
        return True
    if p.role == Role.TUTOR.value and stagiaire.tutor_id == p.id:
        return True
    return p.role == Role.INTERN.value and stagiaire.user_id == p.id


def _assignment_update(p: Principal, stagiaire: Stagiaire) -> bool:
    if p.is_staff:
        return True
    return p.role == Role.TUTOR.value and stagiaire.tutor_id == p.id


Rule = Callable[[Principal, object], bool]

_RULES: Dict[Tuple[object, Action], Rule] = {
    (Demande, Action.READ): _request_read,
    (Demande, Action.WRITE_STATUS): _request_write_status,
    (Demande, Action.COMMENT): _request_comment,
    (Demande, Action.ATTACH_DOCUMENTS): _request_attach,
    (Demande, Action.LIST_DOCUMENTS): _request_read,
    (Resource.REQUESTS, Action.CREATE): _request_create,
    (Document, Action.READ): _document_read,
    (Evaluation, Action.READ): _evaluation_read,
    (Evaluation, Action.UPDATE): _evaluation_write,
    (Evaluation, Action.DELETE): _evaluation_write,
    (Resource.EVALUATIONS, Action.CREATE): _evaluation_create,
    (Resource.EVALUATIONS, Action.STATS): _staff_only,
    (Stagiaire, Action.READ): _assignment_read,
    (Stagiaire, Action.UPDATE): _assignment_update,
    (Stagiaire, Action.REASSIGN_TUTOR): _staff_only,
    (Resource.USERS, Action.MANAGE): _admin_only,
    (Resource.AUDIT, Action.READ): _admin_only,
}


def _kind(resource) -> object:
    if isinstance(resource, Resource):
        return resource
    return type(resource)


def can_access(principal: Optional[Principal], action: Action, resource) -> bool:
    if principal is None or not principal.active:
        return False
    rule = _RULES.get((_kind(resource), action))
    if rule is None:
        return False
    return rule(principal, resource)


def ensure_can(principal: Optional[Principal], action: Action, resource) -> None:
    """Lève Forbidden si aucune règle n'autorise l'action sur la ressource."""
    if not can_access(principal, action, resource):
        raise Forbidden()


T = TypeVar("T")


def filter_visible(principal: Principal, items: Iterable[T], action: Action = Action.READ) -> List[T]:
    """Pour les listes : on écarte les lignes non autorisées sans lever d'erreur."""
    return [item for item in items if can_access(principal, action, item)]
