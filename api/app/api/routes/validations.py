from dataclasses import asdict

from fastapi import APIRouter, Depends

from app.api.errors import http_errors
from app.api.routes.proposals import get_proposal_workflow
from app.core.auth import Actor
from app.core.security import get_current_actor
from app.schemas.proposals import DecisionOut, DecisionRequest, PendingValidationOut
from app.services.proposals import ProposalWorkflow

router = APIRouter()


@router.get("/pending", response_model=list[PendingValidationOut])
async def list_pending_validations(
    actor: Actor = Depends(get_current_actor),
    workflow: ProposalWorkflow = Depends(get_proposal_workflow),
) -> list[PendingValidationOut]:
    with http_errors():
        pending = await workflow.list_pending_validations(actor=actor)
    return [PendingValidationOut(**asdict(item)) for item in pending]


@router.post("/{validation_id}/decision", response_model=DecisionOut)
async def decide_validation(
    validation_id: int,
    payload: DecisionRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: ProposalWorkflow = Depends(get_proposal_workflow),
) -> DecisionOut:
    with http_errors():
        outcome = await workflow.record_decision(
            actor=actor,
            validation_id=validation_id,
            decision=payload.decision,
            reason=payload.reason,
        )
    return DecisionOut(**asdict(outcome))
