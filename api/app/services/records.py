from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from app.core.authorization import CampaignStatus


class ProposalStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    IN_VALIDATION = "IN_VALIDATION"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ValidationDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(slots=True)
class CampaignRecord:
    id: int
    name: str
    status: CampaignStatus
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> CampaignRecord:
        return cls(
            id=row["id"],
            name=row["name"],
            status=CampaignStatus(row["status"]),
            description=row.get("description"),
            start_date=row.get("start_date"),
            end_date=row.get("end_date"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(slots=True)
class CampaignPositionRecord:
    id: int
    campaign_id: int
    position_id: int
    slots_authorized: int
    position_name: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], *, position_name: str | None = None) -> CampaignPositionRecord:
        return cls(
            id=row["id"],
            campaign_id=row["campaign_id"],
            position_id=row["position_id"],
            slots_authorized=row["slots_authorized"],
            position_name=position_name,
        )


@dataclass(slots=True)
class AuthorizedFacilityRecord:
    id: int
    campaign_id: int
    facility_code: str
    facility_name: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], *, facility_name: str | None = None) -> AuthorizedFacilityRecord:
        return cls(
            id=row["id"],
            campaign_id=row["campaign_id"],
            facility_code=row["facility_code"],
            facility_name=facility_name,
        )


@dataclass(slots=True)
class CampaignValidatorRecord:
    id: int
    campaign_id: int
    position_id: int
    validator_unit_id: int
    required: bool = True
    validator_unit_name: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], *, validator_unit_name: str | None = None) -> CampaignValidatorRecord:
        return cls(
            id=row["id"],
            campaign_id=row["campaign_id"],
            position_id=row["position_id"],
            validator_unit_id=row["validator_unit_id"],
            required=bool(row.get("required", True)),
            validator_unit_name=validator_unit_name,
        )


@dataclass(slots=True)
class CampaignDetail:
    campaign: CampaignRecord
    positions: list[CampaignPositionRecord] = field(default_factory=list)
    facilities: list[AuthorizedFacilityRecord] = field(default_factory=list)
    validators: list[CampaignValidatorRecord] = field(default_factory=list)


@dataclass(slots=True)
class ProposalValidationRecord:
    id: int
    proposal_id: int
    validator_unit_id: int
    decision: ValidationDecision | None = None
    reason: str | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ProposalValidationRecord:
        decision = row.get("decision")
        return cls(
            id=row["id"],
            proposal_id=row["proposal_id"],
            validator_unit_id=row["validator_unit_id"],
            decision=ValidationDecision(decision) if decision is not None else None,
            reason=row.get("reason"),
            decided_by=row.get("decided_by"),
            decided_at=row.get("decided_at"),
        )


@dataclass(slots=True)
class ProposalRecord:
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
    validations: list[ProposalValidationRecord] = field(default_factory=list)

    @classmethod
    def from_row(
        cls,
        row: dict[str, Any],
        *,
        validations: list[ProposalValidationRecord] | None = None,
    ) -> ProposalRecord:
        return cls(
            id=row["id"],
            campaign_id=row["campaign_id"],
            position_id=row["position_id"],
            facility_code=row["facility_code"],
            candidate_identifier=row["candidate_identifier"],
            status=ProposalStatus(row["status"]),
            submitted_by=row["submitted_by"],
            cv_file_id=row.get("cv_file_id"),
            submitted_at=row.get("submitted_at"),
            rejection_reason=row.get("rejection_reason"),
            validations=list(validations or []),
        )


@dataclass(slots=True)
class DecisionOutcome:
    validation: ProposalValidationRecord
    proposal: ProposalRecord
    status_changed: bool


@dataclass(slots=True)
class FacilityImportResult:
    added: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    invalid: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ValidatorAssignmentResult:
    added: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


@dataclass(slots=True)
class PendingValidation:
    validation: ProposalValidationRecord
    proposal: ProposalRecord
