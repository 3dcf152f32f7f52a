from datetime import date, datetime

from pydantic import BaseModel, Field

from app.core.authorization import CampaignStatus


class CampaignCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class CampaignPatchRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class CampaignTransitionRequest(BaseModel):
    status: CampaignStatus


class CampaignOut(BaseModel):
    id: int
    name: str
    status: CampaignStatus
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    available_transitions: list[CampaignStatus] = Field(default_factory=list)


class CampaignPositionCreateRequest(BaseModel):
    position_id: int
    slots_authorized: int = Field(gt=0)


class CampaignPositionOut(BaseModel):
    id: int
    campaign_id: int
    position_id: int
    slots_authorized: int
    position_name: str | None = None


class CampaignPositionRemovedOut(BaseModel):
    validators_removed: int


class AuthorizedFacilitiesRequest(BaseModel):
    codes: str | list[str]


class AuthorizedFacilityOut(BaseModel):
    id: int
    campaign_id: int
    facility_code: str
    facility_name: str | None = None


class FacilityImportOut(BaseModel):
    added: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    invalid: list[str] = Field(default_factory=list)


class CampaignValidatorsRequest(BaseModel):
    campaign_position_id: int
    validator_unit_ids: list[int] = Field(min_length=1)


class CampaignValidatorOut(BaseModel):
    id: int
    campaign_id: int
    position_id: int
    validator_unit_id: int
    required: bool = True
    validator_unit_name: str | None = None


class ValidatorAssignmentOut(BaseModel):
    added: list[int] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)


class CampaignDetailOut(BaseModel):
    campaign: CampaignOut
    positions: list[CampaignPositionOut] = Field(default_factory=list)
    facilities: list[AuthorizedFacilityOut] = Field(default_factory=list)
    validators: list[CampaignValidatorOut] = Field(default_factory=list)
