"""Proposal submission and the validator consensus that resolves it.

A proposal fans out one validation row per validator unit configured for its
(campaign, position) at submission time. Its outcome is derived after every
recorded decision: any rejection rejects it, unanimous approval approves it,
anything else keeps it IN_VALIDATION. A proposal without validation rows keeps
its SUBMITTED status; no automatic resolution exists for that case.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from opentelemetry import trace

from app.core.auth import Actor
from app.core.authorization import CampaignStatus, Role
from app.core.curp import normalize_curp, validate_curp
from app.services.blobs import BlobStore, BlobStoreError
from app.services.errors import (
    WorkflowConflictError,
    WorkflowNotFoundError,
    WorkflowPermissionError,
    WorkflowValidationError,
)
from app.services.guards import require_action, translate_store_errors
from app.services.records import (
    DecisionOutcome,
    PendingValidation,
    ProposalRecord,
    ProposalStatus,
    ProposalValidationRecord,
    ValidationDecision,
)
from app.services.store import DataStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_CV_MAX_BYTES = 10 * 1024 * 1024
OPEN_PROPOSAL_STATUSES = (ProposalStatus.SUBMITTED, ProposalStatus.IN_VALIDATION)
PROPOSAL_READ_ALL_ROLES = frozenset({Role.VALIDATOR, Role.HR, Role.EXECUTIVE})


@dataclass(slots=True)
class CvUpload:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def validate_cv_upload(cv: CvUpload | None, *, max_bytes: int = DEFAULT_CV_MAX_BYTES) -> CvUpload:
    if cv is None or not cv.data:
        raise WorkflowValidationError("attach the candidate CV as a PDF")
    if cv.content_type != PDF_CONTENT_TYPE:
        raise WorkflowValidationError("only PDF files are accepted")
    if cv.size > max_bytes:
        raise WorkflowValidationError(f"the CV must not exceed {max_bytes // (1024 * 1024)} MB")
    return cv


def compute_proposal_status(
    current_status: ProposalStatus,
    validations: Iterable[ProposalValidationRecord],
) -> ProposalStatus:
    decisions = [validation.decision for validation in validations]
    if not decisions:
        return current_status
    if ValidationDecision.REJECTED in decisions:
        return ProposalStatus.REJECTED
    if all(decision is not None for decision in decisions):
        return ProposalStatus.APPROVED
    return ProposalStatus.IN_VALIDATION


class ProposalWorkflow:
    def __init__(
        self,
        store: DataStore,
        blobs: BlobStore,
        *,
        cv_bucket: str = "cvs",
        signed_url_ttl_seconds: int = 300,
        cv_max_bytes: int = DEFAULT_CV_MAX_BYTES,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.cv_bucket = cv_bucket
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.cv_max_bytes = cv_max_bytes

    async def submit_proposal(
        self,
        *,
        actor: Actor,
        campaign_id: int,
        position_id: int,
        facility_code: str,
        candidate_identifier: str,
        cv: CvUpload | None,
    ) -> ProposalRecord:
        require_action(actor, "proposal.submit")
        cv = validate_cv_upload(cv, max_bytes=self.cv_max_bytes)
        curp = normalize_curp(candidate_identifier or "")
        if not validate_curp(curp):
            raise WorkflowValidationError("candidate identifier is not a valid CURP")
        normalized_facility_code = (facility_code or "").strip().upper()
        if not normalized_facility_code:
            raise WorkflowValidationError("select an authorized facility")

        with tracer.start_as_current_span("workflow.proposal.submit") as span:
            span.set_attribute("campaign.id", campaign_id)
            span.set_attribute("position.id", position_id)
            await self._require_submission_target(campaign_id, position_id, normalized_facility_code)

            key = f"{curp}_{int(time.time() * 1000)}.pdf"
            with translate_store_errors():
                path = await self.blobs.upload(self.cv_bucket, key, cv.data, content_type=PDF_CONTENT_TYPE)

            try:
                with translate_store_errors():
                    async with self.store.transaction() as tx:
                        file_row = await tx.insert(
                            "files",
                            {
                                "bucket": self.cv_bucket,
                                "path": path,
                                "original_name": cv.filename,
                                "mime": PDF_CONTENT_TYPE,
                                "size": cv.size,
                                "uploaded_by": actor.id,
                            },
                        )
                        proposal_row = await tx.insert(
                            "proposals",
                            {
                                "campaign_id": campaign_id,
                                "position_id": position_id,
                                "facility_code": normalized_facility_code,
                                "candidate_identifier": curp,
                                "cv_file_id": file_row["id"],
                                "status": ProposalStatus.SUBMITTED.value,
                                "submitted_by": actor.id,
                            },
                        )
                        validators = await tx.find(
                            "campaign_validators",
                            {"campaign_id": campaign_id, "position_id": position_id},
                            order_by="id",
                        )
                        if validators:
                            await tx.insert_many(
                                "proposal_validations",
                                [
                                    {"proposal_id": proposal_row["id"], "validator_unit_id": row["validator_unit_id"]}
                                    for row in validators
                                ],
                            )
                            await tx.update(
                                "proposals",
                                {"id": proposal_row["id"]},
                                {"status": ProposalStatus.IN_VALIDATION.value},
                            )
            except Exception:
                await self._discard_uploaded_cv(path)
                raise

            span.set_attribute("proposal.id", proposal_row["id"])
            span.set_attribute("proposal.validators", len(validators))
            if validators:
                logger.info(
                    "proposal submitted id=%s campaign_id=%s validators=%s actor=%s",
                    proposal_row["id"],
                    campaign_id,
                    len(validators),
                    actor.id,
                )
            else:
                logger.warning(
                    "proposal submitted without configured validators id=%s campaign_id=%s position_id=%s; "
                    "it stays SUBMITTED",
                    proposal_row["id"],
                    campaign_id,
                    position_id,
                )
            return await self._load_proposal(proposal_row["id"])

    async def record_decision(
        self,
        *,
        actor: Actor,
        validation_id: int,
        decision: ValidationDecision | str,
        reason: str | None = None,
    ) -> DecisionOutcome:
        require_action(actor, "validation.decide")
        try:
            normalized_decision = ValidationDecision(decision)
        except ValueError:
            raise WorkflowValidationError(f"unknown decision: {decision}") from None
        normalized_reason = reason.strip() if isinstance(reason, str) else None
        if normalized_decision == ValidationDecision.REJECTED and not normalized_reason:
            raise WorkflowValidationError("a rejection reason is required")
        if normalized_decision == ValidationDecision.APPROVED:
            normalized_reason = None

        with tracer.start_as_current_span("workflow.validation.decide") as span:
            span.set_attribute("validation.id", validation_id)
            span.set_attribute("validation.decision", normalized_decision.value)

            validation = await self._load_validation(validation_id)
            units = await self._actor_validator_units(actor)
            if units and validation.validator_unit_id not in units:
                raise WorkflowPermissionError("validation belongs to a validator unit not assigned to the actor")
            if validation.decision is not None:
                raise WorkflowConflictError(f"validation {validation_id} is already decided")

            with translate_store_errors():
                affected = await self.store.update(
                    "proposal_validations",
                    {"id": validation_id, "decision": None},
                    {
                        "decision": normalized_decision.value,
                        "reason": normalized_reason,
                        "decided_by": actor.id,
                        "decided_at": datetime.now(timezone.utc),
                    },
                )
            if affected == 0:
                raise WorkflowConflictError(f"validation {validation_id} is already decided")

            logger.info(
                "validation decided id=%s proposal_id=%s decision=%s actor=%s",
                validation_id,
                validation.proposal_id,
                normalized_decision.value,
                actor.id,
            )
            proposal, status_changed = await self._apply_consensus(validation.proposal_id)
            span.set_attribute("proposal.status", proposal.status.value)
            return DecisionOutcome(
                validation=await self._load_validation(validation_id),
                proposal=proposal,
                status_changed=status_changed,
            )

    async def get_proposal(self, *, actor: Actor, proposal_id: int) -> ProposalRecord:
        require_action(actor, "proposal.read")
        proposal = await self._load_proposal(proposal_id)
        self._require_proposal_visible(actor, proposal)
        return proposal

    async def list_proposals(
        self,
        *,
        actor: Actor,
        statuses: Iterable[ProposalStatus] | None = None,
        campaign_id: int | None = None,
    ) -> list[ProposalRecord]:
        require_action(actor, "proposal.read")
        filter: dict[str, Any] = {}
        if not actor.has_any_role(PROPOSAL_READ_ALL_ROLES):
            filter["submitted_by"] = actor.id
        if statuses:
            filter["status"] = [ProposalStatus(status).value for status in statuses]
        if campaign_id is not None:
            filter["campaign_id"] = campaign_id
        with translate_store_errors():
            rows = await self.store.find("proposals", filter, order_by="-submitted_at")
        return [ProposalRecord.from_row(row) for row in rows]

    async def list_pending_validations(self, *, actor: Actor) -> list[PendingValidation]:
        require_action(actor, "validation.read")
        filter: dict[str, Any] = {"decision": None}
        units = await self._actor_validator_units(actor)
        if units:
            filter["validator_unit_id"] = sorted(units)

        with translate_store_errors():
            validation_rows = await self.store.find("proposal_validations", filter, order_by="id")
            if not validation_rows:
                return []
            proposal_rows = await self.store.find(
                "proposals",
                {
                    "id": list(dict.fromkeys(row["proposal_id"] for row in validation_rows)),
                    "status": [status.value for status in OPEN_PROPOSAL_STATUSES],
                },
            )
        proposals = {row["id"]: ProposalRecord.from_row(row) for row in proposal_rows}
        return [
            PendingValidation(
                validation=ProposalValidationRecord.from_row(row),
                proposal=proposals[row["proposal_id"]],
            )
            for row in validation_rows
            if row["proposal_id"] in proposals
        ]

    async def cv_signed_url(self, *, actor: Actor, proposal_id: int) -> str:
        require_action(actor, "cv.read")
        proposal = await self._load_proposal(proposal_id)
        if not actor.has_any_role({Role.VALIDATOR, Role.HR}):
            self._require_proposal_visible(actor, proposal)
        if proposal.cv_file_id is None:
            raise WorkflowNotFoundError(f"proposal {proposal_id} has no CV on file")

        with translate_store_errors():
            files = await self.store.find("files", {"id": proposal.cv_file_id}, limit=1)
            if not files:
                raise WorkflowNotFoundError(f"CV file not found: {proposal.cv_file_id}")
            return await self.blobs.signed_url(files[0]["bucket"], files[0]["path"], self.signed_url_ttl_seconds)

    async def _require_submission_target(self, campaign_id: int, position_id: int, facility_code: str) -> None:
        with translate_store_errors():
            campaigns = await self.store.find("campaigns", {"id": campaign_id}, limit=1)
            if not campaigns:
                raise WorkflowNotFoundError(f"campaign not found: {campaign_id}")
            if campaigns[0]["status"] != CampaignStatus.ACTIVE.value:
                raise WorkflowValidationError("proposals can only be submitted to ACTIVE campaigns")
            positions = await self.store.find(
                "campaign_positions",
                {"campaign_id": campaign_id, "position_id": position_id},
                limit=1,
            )
            if not positions:
                raise WorkflowValidationError(f"position {position_id} is not part of campaign {campaign_id}")
            facilities = await self.store.find(
                "campaign_authorized_facilities",
                {"campaign_id": campaign_id, "facility_code": facility_code},
                limit=1,
            )
            if not facilities:
                raise WorkflowValidationError(f"facility {facility_code} is not authorized for campaign {campaign_id}")

    async def _apply_consensus(self, proposal_id: int) -> tuple[ProposalRecord, bool]:
        proposal = await self._load_proposal(proposal_id)
        new_status = compute_proposal_status(proposal.status, proposal.validations)
        if new_status == proposal.status:
            return proposal, False

        patch: dict[str, Any] = {"status": new_status.value}
        if new_status == ProposalStatus.REJECTED and not proposal.rejection_reason:
            patch["rejection_reason"] = _first_rejection_reason(proposal.validations)
        with translate_store_errors():
            # Conditional on the status read above; outcome statuses are terminal.
            affected = await self.store.update("proposals", {"id": proposal_id, "status": proposal.status.value}, patch)
        if affected == 0:
            return await self._load_proposal(proposal_id), False

        logger.info(
            "proposal status changed id=%s from=%s to=%s",
            proposal_id,
            proposal.status.value,
            new_status.value,
        )
        return await self._load_proposal(proposal_id), True

    async def _load_proposal(self, proposal_id: int) -> ProposalRecord:
        with translate_store_errors():
            rows = await self.store.find("proposals", {"id": proposal_id}, limit=1)
            if not rows:
                raise WorkflowNotFoundError(f"proposal not found: {proposal_id}")
            validation_rows = await self.store.find("proposal_validations", {"proposal_id": proposal_id}, order_by="id")
        return ProposalRecord.from_row(
            rows[0],
            validations=[ProposalValidationRecord.from_row(row) for row in validation_rows],
        )

    async def _load_validation(self, validation_id: int) -> ProposalValidationRecord:
        with translate_store_errors():
            rows = await self.store.find("proposal_validations", {"id": validation_id}, limit=1)
        if not rows:
            raise WorkflowNotFoundError(f"validation not found: {validation_id}")
        return ProposalValidationRecord.from_row(rows[0])

    async def _actor_validator_units(self, actor: Actor) -> set[int]:
        with translate_store_errors():
            rows = await self.store.find("user_validator_units", {"user_id": actor.id})
        return {row["validator_unit_id"] for row in rows}

    async def _discard_uploaded_cv(self, path: str) -> None:
        try:
            await self.blobs.remove(self.cv_bucket, path)
        except BlobStoreError:
            logger.exception("failed to remove orphaned CV bucket=%s path=%s", self.cv_bucket, path)

    @staticmethod
    def _require_proposal_visible(actor: Actor, proposal: ProposalRecord) -> None:
        if actor.has_any_role(PROPOSAL_READ_ALL_ROLES):
            return
        if proposal.submitted_by != actor.id:
            raise WorkflowPermissionError("proposal was submitted by another actor")


def _first_rejection_reason(validations: Iterable[ProposalValidationRecord]) -> str | None:
    rejected = [validation for validation in validations if validation.decision == ValidationDecision.REJECTED]
    if not rejected:
        return None
    rejected.sort(key=lambda validation: (validation.decided_at is None, validation.decided_at, validation.id))
    return rejected[0].reason
