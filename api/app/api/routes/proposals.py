from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from app.api.errors import http_errors
from app.core.auth import Actor
from app.core.config import Settings, get_settings
from app.core.security import get_current_actor
from app.schemas.proposals import CvUrlOut, ProposalOut
from app.services.proposals import CvUpload, ProposalWorkflow
from app.services.providers import get_blob_store, get_data_store
from app.services.records import ProposalStatus

router = APIRouter()


def get_proposal_workflow(
    settings: Settings = Depends(get_settings),
    store=Depends(get_data_store),
    blobs=Depends(get_blob_store),
) -> ProposalWorkflow:
    return ProposalWorkflow(
        store,
        blobs,
        cv_bucket=settings.cv_bucket,
        signed_url_ttl_seconds=settings.cv_signed_url_ttl_seconds,
        cv_max_bytes=settings.cv_max_bytes,
    )


@router.get("", response_model=list[ProposalOut])
async def list_proposals(
    actor: Actor = Depends(get_current_actor),
    workflow: ProposalWorkflow = Depends(get_proposal_workflow),
    proposal_status: list[ProposalStatus] | None = Query(default=None, alias="status"),
    campaign_id: int | None = Query(default=None),
) -> list[ProposalOut]:
    with http_errors():
        proposals = await workflow.list_proposals(actor=actor, statuses=proposal_status, campaign_id=campaign_id)
    return [ProposalOut(**asdict(proposal)) for proposal in proposals]


@router.post("", response_model=ProposalOut, status_code=status.HTTP_201_CREATED)
async def submit_proposal(
    campaign_id: int = Form(...),
    position_id: int = Form(...),
    facility_code: str = Form(...),
    candidate_identifier: str = Form(...),
    cv: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    settings: Settings = Depends(get_settings),
    workflow: ProposalWorkflow = Depends(get_proposal_workflow),
) -> ProposalOut:
    # Read at most one byte past the limit.
    upload = CvUpload(
        filename=cv.filename or "cv.pdf",
        content_type=cv.content_type or "",
        data=await cv.read(settings.cv_max_bytes + 1),
    )
    with http_errors():
        proposal = await workflow.submit_proposal(
            actor=actor,
            campaign_id=campaign_id,
            position_id=position_id,
            facility_code=facility_code,
            candidate_identifier=candidate_identifier,
            cv=upload,
        )
    return ProposalOut(**asdict(proposal))


@router.get("/{proposal_id}", response_model=ProposalOut)
async def get_proposal(
    proposal_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: ProposalWorkflow = Depends(get_proposal_workflow),
) -> ProposalOut:
    with http_errors():
        proposal = await workflow.get_proposal(actor=actor, proposal_id=proposal_id)
    return ProposalOut(**asdict(proposal))


@router.get("/{proposal_id}/cv-url", response_model=CvUrlOut)
async def get_proposal_cv_url(
    proposal_id: int,
    actor: Actor = Depends(get_current_actor),
    workflow: ProposalWorkflow = Depends(get_proposal_workflow),
) -> CvUrlOut:
    with http_errors():
        url = await workflow.cv_signed_url(actor=actor, proposal_id=proposal_id)
    return CvUrlOut(url=url, expires_in=workflow.signed_url_ttl_seconds)
