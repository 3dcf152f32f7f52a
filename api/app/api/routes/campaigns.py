from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, status

from app.api.errors import http_errors
from app.core.auth import Actor
from app.core.authorization import CampaignStatus, available_campaign_actions
from app.core.security import get_current_actor
from app.schemas.campaigns import (
    AuthorizedFacilitiesRequest,
    CampaignCreateRequest,
    CampaignDetailOut,
    CampaignOut,
    CampaignPatchRequest,
    CampaignPositionCreateRequest,
    CampaignPositionOut,
    CampaignPositionRemovedOut,
    CampaignTransitionRequest,
    CampaignValidatorsRequest,
    FacilityImportOut,
    ValidatorAssignmentOut,
)
from app.services.campaigns import CampaignWorkflow
from app.services.providers import get_data_store
from app.services.records import CampaignRecord

router = APIRouter()


def get_campaign_workflow(store=Depends(get_data_store)) -> CampaignWorkflow:
    return CampaignWorkflow(store)


def _campaign_out(campaign: CampaignRecord, actor: Actor) -> CampaignOut:
    return CampaignOut(
        **asdict(campaign),
        available_transitions=available_campaign_actions(campaign.status, actor.roles),
    )


@router.get("", response_model=list[CampaignOut])
async def list_campaigns(
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
    campaign_status: list[CampaignStatus] | None = Query(default=None, alias="status"),
) -> list[CampaignOut]:
    with http_errors():
        campaigns = await workflow.list_campaigns(actor=actor, statuses=campaign_status)
    return [_campaign_out(campaign, actor) for campaign in campaigns]


@router.post("", response_model=CampaignOut, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    payload: CampaignCreateRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> CampaignOut:
    with http_errors():
        campaign = await workflow.create_campaign(
            actor=actor,
            name=payload.name,
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
    return _campaign_out(campaign, actor)


@router.get("/{campaign_id}", response_model=CampaignDetailOut)
async def get_campaign(
    campaign_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> CampaignDetailOut:
    with http_errors():
        detail = await workflow.get_campaign_detail(actor=actor, campaign_id=campaign_id)
    return CampaignDetailOut(
        campaign=_campaign_out(detail.campaign, actor),
        positions=[asdict(row) for row in detail.positions],
        facilities=[asdict(row) for row in detail.facilities],
        validators=[asdict(row) for row in detail.validators],
    )


@router.patch("/{campaign_id}", response_model=CampaignOut)
async def patch_campaign(
    campaign_id: int,
    payload: CampaignPatchRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> CampaignOut:
    with http_errors():
        campaign = await workflow.update_campaign(
            actor=actor,
            campaign_id=campaign_id,
            patch=payload.model_dump(exclude_unset=True),
        )
    return _campaign_out(campaign, actor)


@router.post("/{campaign_id}/transitions", response_model=CampaignOut)
async def transition_campaign(
    campaign_id: int,
    payload: CampaignTransitionRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> CampaignOut:
    with http_errors():
        campaign = await workflow.transition(actor=actor, campaign_id=campaign_id, target_status=payload.status)
    return _campaign_out(campaign, actor)


@router.post("/{campaign_id}/positions", response_model=CampaignPositionOut, status_code=status.HTTP_201_CREATED)
async def add_campaign_position(
    campaign_id: int,
    payload: CampaignPositionCreateRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> CampaignPositionOut:
    with http_errors():
        position = await workflow.add_position(
            actor=actor,
            campaign_id=campaign_id,
            position_id=payload.position_id,
            slots_authorized=payload.slots_authorized,
        )
    return CampaignPositionOut(**asdict(position))


@router.delete("/{campaign_id}/positions/{campaign_position_id}", response_model=CampaignPositionRemovedOut)
async def remove_campaign_position(
    campaign_id: int,
    campaign_position_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> CampaignPositionRemovedOut:
    with http_errors():
        removed = await workflow.remove_position(
            actor=actor,
            campaign_id=campaign_id,
            campaign_position_id=campaign_position_id,
        )
    return CampaignPositionRemovedOut(validators_removed=removed)


@router.post("/{campaign_id}/facilities", response_model=FacilityImportOut)
async def add_authorized_facilities(
    campaign_id: int,
    payload: AuthorizedFacilitiesRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> FacilityImportOut:
    with http_errors():
        result = await workflow.add_authorized_facilities(actor=actor, campaign_id=campaign_id, codes=payload.codes)
    return FacilityImportOut(**asdict(result))


@router.delete("/{campaign_id}/facilities/{facility_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_authorized_facility(
    campaign_id: int,
    facility_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> None:
    with http_errors():
        await workflow.remove_authorized_facility(actor=actor, campaign_id=campaign_id, facility_id=facility_id)


@router.post("/{campaign_id}/validators", response_model=ValidatorAssignmentOut)
async def add_campaign_validators(
    campaign_id: int,
    payload: CampaignValidatorsRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> ValidatorAssignmentOut:
    with http_errors():
        result = await workflow.add_validators(
            actor=actor,
            campaign_id=campaign_id,
            campaign_position_id=payload.campaign_position_id,
            validator_unit_ids=payload.validator_unit_ids,
        )
    return ValidatorAssignmentOut(**asdict(result))


@router.delete("/{campaign_id}/validators/{campaign_validator_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_campaign_validator(
    campaign_id: int,
    campaign_validator_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: CampaignWorkflow = Depends(get_campaign_workflow),
) -> None:
    with http_errors():
        await workflow.remove_validator(
            actor=actor,
            campaign_id=campaign_id,
            campaign_validator_id=campaign_validator_id,
        )
