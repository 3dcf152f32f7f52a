"""Campaign state machine and the planning operations that prepare a campaign for review.

A campaign moves DRAFT -> UNDER_REVIEW -> APPROVED -> ACTIVE -> INACTIVE, with
Health-Review able to return an UNDER_REVIEW campaign to DRAFT. Each edge is
owned by exactly one role (see ``CAMPAIGN_TRANSITION_ROLES``); INACTIVE has no
outgoing edge. Only DRAFT campaigns accept edits, and only from Planning.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from opentelemetry import trace

from app.core.auth import Actor
from app.core.authorization import CampaignStatus, Role, roles_for_transition
from app.services.errors import (
    WorkflowConflictError,
    WorkflowNotFoundError,
    WorkflowPermissionError,
    WorkflowValidationError,
)
from app.services.guards import require_action, translate_store_errors
from app.services.records import (
    AuthorizedFacilityRecord,
    CampaignDetail,
    CampaignPositionRecord,
    CampaignRecord,
    CampaignValidatorRecord,
    FacilityImportResult,
    ValidatorAssignmentResult,
)
from app.services.store import DataStore, RepositoryConflictError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

FACILITY_CODE_SEPARATORS_RE = re.compile(r"[\n\r,;]+")
EDITABLE_FIELDS = {"name", "description", "start_date", "end_date"}


def can_transition(campaign: CampaignRecord, target_status: CampaignStatus | str, actor_roles: Iterable[Role]) -> bool:
    """True when the edge exists and one of ``actor_roles`` owns it. Preconditions are not checked."""
    try:
        target = CampaignStatus(target_status)
    except ValueError:
        return False
    allowed = roles_for_transition(campaign.status, target)
    return allowed is not None and not allowed.isdisjoint(actor_roles)


def parse_facility_codes(raw: str | Iterable[str]) -> list[str]:
    """Split pasted facility codes on newlines, commas and semicolons; upper-case and de-duplicate."""
    chunks = [raw] if isinstance(raw, str) else list(raw)
    codes: list[str] = []
    seen: set[str] = set()
    for chunk in chunks:
        for item in FACILITY_CODE_SEPARATORS_RE.split(chunk):
            code = item.strip().upper()
            if code and code not in seen:
                seen.add(code)
                codes.append(code)
    return codes


class CampaignWorkflow:
    def __init__(self, store: DataStore) -> None:
        self.store = store

    async def get_campaign(self, campaign_id: int) -> CampaignRecord:
        with translate_store_errors():
            rows = await self.store.find("campaigns", {"id": campaign_id}, limit=1)
        if not rows:
            raise WorkflowNotFoundError(f"campaign not found: {campaign_id}")
        return CampaignRecord.from_row(rows[0])

    async def list_campaigns(
        self,
        *,
        actor: Actor,
        statuses: Iterable[CampaignStatus] | None = None,
    ) -> list[CampaignRecord]:
        require_action(actor, "campaign.read")
        filter: dict[str, Any] = {}
        if statuses:
            filter["status"] = [CampaignStatus(status).value for status in statuses]
        with translate_store_errors():
            rows = await self.store.find("campaigns", filter, order_by="-created_at")
        return [CampaignRecord.from_row(row) for row in rows]

    async def get_campaign_detail(self, *, actor: Actor, campaign_id: int) -> CampaignDetail:
        require_action(actor, "campaign.read")
        campaign = await self.get_campaign(campaign_id)
        with translate_store_errors():
            position_rows = await self.store.find("campaign_positions", {"campaign_id": campaign_id}, order_by="id")
            facility_rows = await self.store.find(
                "campaign_authorized_facilities",
                {"campaign_id": campaign_id},
                order_by="facility_code",
            )
            validator_rows = await self.store.find("campaign_validators", {"campaign_id": campaign_id}, order_by="id")
            position_names = await self._catalog_names(
                "positions", "id", [row["position_id"] for row in position_rows]
            )
            facility_names = await self._catalog_names(
                "facilities", "facility_code", [row["facility_code"] for row in facility_rows]
            )
            unit_names = await self._catalog_names(
                "validator_units", "id", [row["validator_unit_id"] for row in validator_rows]
            )

        return CampaignDetail(
            campaign=campaign,
            positions=[
                CampaignPositionRecord.from_row(row, position_name=position_names.get(row["position_id"]))
                for row in position_rows
            ],
            facilities=[
                AuthorizedFacilityRecord.from_row(row, facility_name=facility_names.get(row["facility_code"]))
                for row in facility_rows
            ],
            validators=[
                CampaignValidatorRecord.from_row(row, validator_unit_name=unit_names.get(row["validator_unit_id"]))
                for row in validator_rows
            ],
        )

    async def create_campaign(
        self,
        *,
        actor: Actor,
        name: str,
        description: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> CampaignRecord:
        require_action(actor, "campaign.create")
        normalized_name = self._require_name(name)
        self._validate_dates(start_date, end_date)

        with translate_store_errors():
            row = await self.store.insert(
                "campaigns",
                {
                    "name": normalized_name,
                    "description": self._clean_optional_text(description),
                    "status": CampaignStatus.DRAFT.value,
                    "start_date": start_date,
                    "end_date": end_date,
                    "created_by": actor.id,
                },
            )
        logger.info("campaign created id=%s actor=%s", row["id"], actor.id)
        return CampaignRecord.from_row(row)

    async def update_campaign(
        self,
        *,
        actor: Actor,
        campaign_id: int,
        patch: Mapping[str, Any],
    ) -> CampaignRecord:
        campaign = await self._get_editable_campaign(actor, campaign_id)
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise WorkflowValidationError(f"fields are not editable: {sorted(unknown)}")

        changes: dict[str, Any] = {}
        if "name" in patch:
            changes["name"] = self._require_name(patch["name"])
        if "description" in patch:
            changes["description"] = self._clean_optional_text(patch["description"])
        for key in ("start_date", "end_date"):
            if key in patch:
                changes[key] = patch[key]
        self._validate_dates(
            changes.get("start_date", campaign.start_date),
            changes.get("end_date", campaign.end_date),
        )
        if not changes:
            return campaign

        with translate_store_errors():
            affected = await self.store.update(
                "campaigns",
                {"id": campaign_id, "status": CampaignStatus.DRAFT.value},
                changes,
            )
        if affected == 0:
            raise WorkflowConflictError("campaign left DRAFT before the update was applied")
        return await self.get_campaign(campaign_id)

    async def transition(
        self,
        *,
        actor: Actor,
        campaign_id: int,
        target_status: CampaignStatus | str,
    ) -> CampaignRecord:
        try:
            target = CampaignStatus(target_status)
        except ValueError:
            raise WorkflowValidationError(f"unknown campaign status: {target_status}") from None

        with tracer.start_as_current_span("workflow.campaign.transition") as span:
            span.set_attribute("campaign.id", campaign_id)
            span.set_attribute("campaign.target_status", target.value)

            campaign = await self.get_campaign(campaign_id)
            from_status = campaign.status
            allowed = roles_for_transition(from_status, target)
            if allowed is None:
                raise WorkflowValidationError(
                    f"invalid campaign transition: {from_status.value} -> {target.value}"
                )
            if not actor.has_any_role(allowed):
                raise WorkflowPermissionError(
                    f"campaign transition {from_status.value} -> {target.value} requires one of roles: "
                    f"{sorted(role.value for role in allowed)}"
                )
            if from_status == CampaignStatus.DRAFT and target == CampaignStatus.UNDER_REVIEW:
                await self._require_ready_for_review(campaign_id)

            with translate_store_errors():
                affected = await self.store.update(
                    "campaigns",
                    {"id": campaign_id, "status": from_status.value},
                    {"status": target.value},
                )
            if affected == 0:
                raise WorkflowConflictError("campaign status changed concurrently")

            logger.info(
                "campaign status changed id=%s from=%s to=%s actor=%s",
                campaign_id,
                from_status.value,
                target.value,
                actor.id,
            )
            return await self.get_campaign(campaign_id)

    async def add_position(
        self,
        *,
        actor: Actor,
        campaign_id: int,
        position_id: int,
        slots_authorized: int,
    ) -> CampaignPositionRecord:
        await self._get_editable_campaign(actor, campaign_id)
        if isinstance(slots_authorized, bool) or not isinstance(slots_authorized, int) or slots_authorized <= 0:
            raise WorkflowValidationError("slots_authorized must be a positive integer")

        with translate_store_errors():
            catalog_rows = await self.store.find("positions", {"id": position_id}, limit=1)
            if not catalog_rows:
                raise WorkflowNotFoundError(f"position not found: {position_id}")
            try:
                row = await self.store.insert(
                    "campaign_positions",
                    {
                        "campaign_id": campaign_id,
                        "position_id": position_id,
                        "slots_authorized": slots_authorized,
                    },
                )
            except RepositoryConflictError as exc:
                raise WorkflowConflictError(
                    f"position {position_id} is already part of campaign {campaign_id}"
                ) from exc
        return CampaignPositionRecord.from_row(row, position_name=catalog_rows[0].get("name"))

    async def remove_position(self, *, actor: Actor, campaign_id: int, campaign_position_id: int) -> int:
        """Remove a campaign position and the validators assigned to it; returns validators removed."""
        await self._get_editable_campaign(actor, campaign_id)
        with translate_store_errors():
            rows = await self.store.find(
                "campaign_positions",
                {"id": campaign_position_id, "campaign_id": campaign_id},
                limit=1,
            )
            if not rows:
                raise WorkflowNotFoundError(f"campaign position not found: {campaign_position_id}")
            async with self.store.transaction() as tx:
                removed_validators = await tx.delete(
                    "campaign_validators",
                    {"campaign_id": campaign_id, "position_id": rows[0]["position_id"]},
                )
                await tx.delete("campaign_positions", {"id": campaign_position_id})
        logger.info(
            "campaign position removed campaign_id=%s campaign_position_id=%s validators_removed=%s",
            campaign_id,
            campaign_position_id,
            removed_validators,
        )
        return removed_validators

    async def add_authorized_facilities(
        self,
        *,
        actor: Actor,
        campaign_id: int,
        codes: str | Iterable[str],
    ) -> FacilityImportResult:
        await self._get_editable_campaign(actor, campaign_id)
        parsed = parse_facility_codes(codes)
        if not parsed:
            raise WorkflowValidationError("no facility codes provided")

        with translate_store_errors():
            existing_rows = await self.store.find("campaign_authorized_facilities", {"campaign_id": campaign_id})
            existing = {str(row["facility_code"]).upper() for row in existing_rows}
            result = FacilityImportResult(skipped=[code for code in parsed if code in existing])
            candidates = [code for code in parsed if code not in existing]
            if not candidates:
                return result

            catalog_rows = await self.store.find("facilities", {"facility_code": candidates})
            known = {row["facility_code"] for row in catalog_rows}
            result.invalid = [code for code in candidates if code not in known]
            valid = [code for code in candidates if code in known]
            if valid:
                inserted = await self.store.upsert(
                    "campaign_authorized_facilities",
                    [{"campaign_id": campaign_id, "facility_code": code} for code in valid],
                    conflict_keys=("campaign_id", "facility_code"),
                    ignore_duplicates=True,
                )
                result.added = valid
                logger.info(
                    "authorized facilities added campaign_id=%s requested=%s inserted=%s invalid=%s",
                    campaign_id,
                    len(valid),
                    inserted,
                    len(result.invalid),
                )
        return result

    async def remove_authorized_facility(self, *, actor: Actor, campaign_id: int, facility_id: int) -> None:
        await self._get_editable_campaign(actor, campaign_id)
        with translate_store_errors():
            removed = await self.store.delete(
                "campaign_authorized_facilities",
                {"id": facility_id, "campaign_id": campaign_id},
            )
        if removed == 0:
            raise WorkflowNotFoundError(f"authorized facility not found: {facility_id}")

    async def add_validators(
        self,
        *,
        actor: Actor,
        campaign_id: int,
        campaign_position_id: int,
        validator_unit_ids: Iterable[int],
    ) -> ValidatorAssignmentResult:
        await self._get_editable_campaign(actor, campaign_id)
        unit_ids = list(dict.fromkeys(validator_unit_ids))
        if not unit_ids:
            raise WorkflowValidationError("select at least one validator unit")

        with translate_store_errors():
            positions = await self.store.find(
                "campaign_positions",
                {"id": campaign_position_id, "campaign_id": campaign_id},
                limit=1,
            )
            if not positions:
                raise WorkflowNotFoundError(f"campaign position not found: {campaign_position_id}")
            position_id = positions[0]["position_id"]

            units = await self.store.find("validator_units", {"id": unit_ids})
            unknown = sorted(set(unit_ids) - {row["id"] for row in units})
            if unknown:
                raise WorkflowValidationError(f"unknown validator units: {unknown}")

            existing_rows = await self.store.find(
                "campaign_validators",
                {"campaign_id": campaign_id, "position_id": position_id},
            )
            existing = {row["validator_unit_id"] for row in existing_rows}
            result = ValidatorAssignmentResult(
                added=[unit_id for unit_id in unit_ids if unit_id not in existing],
                skipped=[unit_id for unit_id in unit_ids if unit_id in existing],
            )
            if result.added:
                await self.store.upsert(
                    "campaign_validators",
                    [
                        {
                            "campaign_id": campaign_id,
                            "position_id": position_id,
                            "validator_unit_id": unit_id,
                            "required": True,
                        }
                        for unit_id in result.added
                    ],
                    conflict_keys=("campaign_id", "position_id", "validator_unit_id"),
                    ignore_duplicates=True,
                )
        return result

    async def remove_validator(self, *, actor: Actor, campaign_id: int, campaign_validator_id: int) -> None:
        await self._get_editable_campaign(actor, campaign_id)
        with translate_store_errors():
            removed = await self.store.delete(
                "campaign_validators",
                {"id": campaign_validator_id, "campaign_id": campaign_id},
            )
        if removed == 0:
            raise WorkflowNotFoundError(f"campaign validator not found: {campaign_validator_id}")

    async def _get_editable_campaign(self, actor: Actor, campaign_id: int) -> CampaignRecord:
        require_action(actor, "campaign.edit")
        campaign = await self.get_campaign(campaign_id)
        if campaign.status != CampaignStatus.DRAFT:
            raise WorkflowValidationError(
                f"campaign {campaign_id} cannot be edited in status {campaign.status.value}"
            )
        return campaign

    async def _require_ready_for_review(self, campaign_id: int) -> None:
        with translate_store_errors():
            positions = await self.store.find("campaign_positions", {"campaign_id": campaign_id}, limit=1)
            facilities = await self.store.find(
                "campaign_authorized_facilities",
                {"campaign_id": campaign_id},
                limit=1,
            )
        if not positions:
            raise WorkflowValidationError("add at least one position before submitting for review")
        if not facilities:
            raise WorkflowValidationError("add at least one authorized facility before submitting for review")

    async def _catalog_names(self, collection: str, key: str, values: list[Any]) -> dict[Any, str | None]:
        if not values:
            return {}
        rows = await self.store.find(collection, {key: list(dict.fromkeys(values))})
        return {row[key]: row.get("name") for row in rows}

    @staticmethod
    def _require_name(value: Any) -> str:
        name = value.strip() if isinstance(value, str) else ""
        if not name:
            raise WorkflowValidationError("campaign name is required")
        return name

    @staticmethod
    def _clean_optional_text(value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise WorkflowValidationError("expected a text value")
        return value.strip() or None

    @staticmethod
    def _validate_dates(start_date: date | None, end_date: date | None) -> None:
        if start_date is not None and end_date is not None and end_date < start_date:
            raise WorkflowValidationError("end_date must not be earlier than start_date")
