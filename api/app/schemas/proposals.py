from datetime import datetime

from pydantic import BaseModel, Field

from app.services.records import ProposalStatus, ValidationDecision


class ProposalValidationOut(BaseModel):
    id: int
    proposal_id: int
    validator_unit_id: int
    decision: ValidationDecision | None = None
    reason: str | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None


class ProposalOut(BaseModel):
    id: int
    campaign_id: int
    position_id: int
    facility_code: str
    candidate_identifier: str
    status: ProposalStatus
    submitted_by: str
    cv_file_id: int | None = None
    submitted_at: datetime | None = None
    rejection_reason: str | None = None
    validations: list[ProposalValidationOut] = Field(default_factory=list)


class CvUrlOut(BaseModel):
    url: str
    expires_in: int


class DecisionRequest(BaseModel):
    decision: ValidationDecision
    reason: str | None = None


class DecisionOut(BaseModel):
    validation: ProposalValidationOut
    proposal: ProposalOut
    status_changed: bool


class PendingValidationOut(BaseModel):
    validation: ProposalValidationOut
    proposal: ProposalOut
