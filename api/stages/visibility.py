"""
Filtre de visibilité des documents.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .models import Demande, DemandeDocument, Document
from .policy import Action, Principal, ensure_can, filter_visible
from .utils import as_aware


@dataclass
class VisibleDocument:
    document: Document
    required_document_type: Optional[str] = None
    mandatory: Optional[bool] = None

    @property
    def from_link(self) -> bool:
        return self.required_document_type is not None


def _newest_first(document: Document):
    return as_aware(document.created_at)


def visible_documents(principal: Principal, documents: Iterable[Document]) -> List[Document]:
    """Documents propres, publics, ou tout pour admin/RH ; du plus récent au plus ancien."""
    visible = filter_visible(principal, documents, Action.READ)
    return sorted(visible, key=_newest_first, reverse=True)


def documents_for_request(
    principal: Principal,
    demande: Demande,
    direct: Iterable[Document],
    links: Iterable[DemandeDocument],
) -> List[VisibleDocument]:
    """
    Fusionne les documents rattachés directement à la demande et ceux
    atteints par les lignes demande_documents. Une seule entrée par
    document, en gardant la version annotée (type exigé / obligatoire).
    """
    ensure_can(principal, Action.LIST_DOCUMENTS, demande)

    merged: Dict[str, VisibleDocument] = {}
    for document in direct:
        merged.setdefault(document.id, VisibleDocument(document))

    for link in links:
        if link.document is None:
            continue
        merged[link.document.id] = VisibleDocument(
            link.document,
            required_document_type=link.required_document_type,
            mandatory=bool(link.mandatory),
        )

    return sorted(
        merged.values(), key=lambda item: _newest_first(item.document), reverse=True
    )
