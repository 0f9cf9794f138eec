# api/stages/schemas.py
from datetime import date, datetime
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr, model_validator


# ========== Types ==========

RoleType = Literal["admin", "rh", "tutor", "intern"]
RequestType = Literal["leave", "extension", "tutor_change", "modification"]
RequestStatus = Literal["pending", "approved", "rejected"]
EvaluationType = Literal["mid_term", "final", "self"]
EvaluationStatus = Literal["draft", "in_progress", "finalized"]
AssignmentStatus = Literal["active", "completed", "interrupted"]

ScoreValue = Annotated[float, Field(ge=0, le=20)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ========== Authentification ==========


class TokenOut(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    email: str
    role: RoleType
    active: bool


# ========== Utilisateurs ==========


class UserOut(ORMModel):
    id: str
    email: str
    name: str
    role: RoleType
    is_active: bool
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserCreate(BaseModel):
    email: EmailStr
    password: constr(min_length=6)
    name: constr(min_length=2)
    role: RoleType
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True


class UserUpdate(BaseModel):
    """
    Payload pour PUT /admin/users/{user_id}.
    Tous les champs sont optionnels ; seuls ceux fournis sont modifiés.
    """
    name: Optional[constr(min_length=2)] = None
    role: Optional[RoleType] = None
    is_active: Optional[bool] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    address: Optional[str] = None
    password: Optional[constr(min_length=6)] = None


class ProfileUpdate(BaseModel):
    """
    PUT /auth/me : l'utilisateur modifie son propre profil.
    role et is_active sont refusés (réservés à l'admin).
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[constr(min_length=2)] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    address: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: constr(min_length=6)


# ========== Affectations de stage ==========


class StagiaireOut(ORMModel):
    id: str
    user_id: str
    company_name: str
    position: str
    tutor_id: Optional[str] = None
    status: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: datetime


class StagiaireUpdate(BaseModel):
    company_name: Optional[constr(min_length=1)] = None
    position: Optional[constr(min_length=1)] = None
    status: Optional[AssignmentStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    tutor_id: Optional[str] = None


# ========== Demandes ==========


class DemandeCreate(BaseModel):
    type: RequestType
    description: constr(min_length=1)
    title: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date doit être postérieure à start_date")
        return self


class DemandeUpdate(BaseModel):
    """Décision (admin/RH) et/ou commentaire de réponse."""
    status: Optional[RequestStatus] = None
    response_comment: Optional[str] = None

    @model_validator(mode="after")
    def _not_empty(self):
        if self.status is None and self.response_comment is None:
            raise ValueError("status ou response_comment requis")
        return self


class DemandeOut(ORMModel):
    id: str
    type: str
    status: str
    stagiaire_id: str
    tutor_id: Optional[str] = None
    title: Optional[str] = None
    description: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    response_comment: Optional[str] = None
    responder_id: Optional[str] = None
    created_at: datetime
    responded_at: Optional[datetime] = None


class RequiredDocumentIn(BaseModel):
    type: constr(min_length=1)
    document_id: Optional[str] = None
    mandatory: bool = False


class RequiredDocumentsIn(BaseModel):
    documents: List[RequiredDocumentIn] = Field(min_length=1)


class DemandeDocumentOut(ORMModel):
    id: str
    demande_id: str
    document_id: Optional[str] = None
    required_document_type: str
    mandatory: bool
    created_at: datetime


# ========== Documents ==========


class DocumentOut(ORMModel):
    id: str
    name: str
    doc_type: str
    mime_type: Optional[str] = None
    size_bytes: int
    owner_id: str
    demande_id: Optional[str] = None
    is_public: bool
    created_at: datetime


class RequestDocumentOut(DocumentOut):
    required_document_type: Optional[str] = None
    mandatory: Optional[bool] = None


# ========== Évaluations ==========


class EvaluationCreate(BaseModel):
    stagiaire_id: str
    evaluator_id: Optional[str] = None
    period_start: date
    period_end: date
    type: EvaluationType = "mid_term"
    technical: ScoreValue = 10
    interpersonal: ScoreValue = 10
    autonomy: ScoreValue = 10
    punctuality: ScoreValue = 10
    motivation: ScoreValue = 10
    comments: Optional[str] = None
    strengths: Optional[str] = None
    improvement_areas: Optional[str] = None
    next_objectives: Optional[str] = None
    recommendations: Optional[str] = None
    status: EvaluationStatus = "draft"

    @model_validator(mode="after")
    def _check_period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end doit être postérieure à period_start")
        return self


class EvaluationUpdate(BaseModel):
    """
    Mise à jour partielle. overall_score n'est jamais accepté :
    il est recalculé à partir des cinq notes.
    """
    model_config = ConfigDict(extra="forbid")

    period_start: Optional[date] = None
    period_end: Optional[date] = None
    type: Optional[EvaluationType] = None
    technical: Optional[ScoreValue] = None
    interpersonal: Optional[ScoreValue] = None
    autonomy: Optional[ScoreValue] = None
    punctuality: Optional[ScoreValue] = None
    motivation: Optional[ScoreValue] = None
    comments: Optional[str] = None
    strengths: Optional[str] = None
    improvement_areas: Optional[str] = None
    next_objectives: Optional[str] = None
    recommendations: Optional[str] = None
    status: Optional[EvaluationStatus] = None


class EvaluationOut(ORMModel):
    id: str
    stagiaire_id: str
    evaluator_id: str
    period_start: date
    period_end: date
    type: str
    technical: float
    interpersonal: float
    autonomy: float
    punctuality: float
    motivation: float
    overall_score: float
    comments: Optional[str] = None
    strengths: Optional[str] = None
    improvement_areas: Optional[str] = None
    next_objectives: Optional[str] = None
    recommendations: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


# ========== Journal d'audit ==========


class AuditEntryOut(BaseModel):
    """
    Entrée du journal d'audit.
    Utilisé par GET /admin/audit-logs.
    """
    id: int
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    user_email: Optional[str] = None
    detail: Optional[str] = None
    created_at: datetime


def envelope(data=None, **extra) -> dict:
    """Enveloppe de réponse commune : {"success": true, "data": ..., ...}."""
    return {"success": True, "data": data, **extra}
