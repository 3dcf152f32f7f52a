"""Role gate for the campaign and proposal workflow.

Every permission in the service is read from the tables in this module:
campaign status edges, non-transition actions and navigation entries.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Role(str, Enum):
    PLANNING = "PLANEACION"
    HEALTH_REVIEW = "ATENCION_SALUD"
    HR = "RH"
    STATE_COORDINATION = "COORD_ESTATAL"
    VALIDATOR = "VALIDADOR"
    EXECUTIVE = "DG"


ROLE_LABELS: dict[Role, str] = {
    Role.PLANNING: "Planeación",
    Role.HEALTH_REVIEW: "Atención a la Salud",
    Role.HR: "Recursos Humanos",
    Role.STATE_COORDINATION: "Coordinación Estatal",
    Role.VALIDATOR: "Validador",
    Role.EXECUTIVE: "Dirección General",
}


class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# (from, to) -> roles allowed to drive the edge. Absent pairs are illegal.
CAMPAIGN_TRANSITION_ROLES: dict[tuple[CampaignStatus, CampaignStatus], frozenset[Role]] = {
    (CampaignStatus.DRAFT, CampaignStatus.UNDER_REVIEW): frozenset({Role.PLANNING}),
    (CampaignStatus.UNDER_REVIEW, CampaignStatus.APPROVED): frozenset({Role.HEALTH_REVIEW}),
    (CampaignStatus.UNDER_REVIEW, CampaignStatus.DRAFT): frozenset({Role.HEALTH_REVIEW}),
    (CampaignStatus.APPROVED, CampaignStatus.ACTIVE): frozenset({Role.HR}),
    (CampaignStatus.ACTIVE, CampaignStatus.INACTIVE): frozenset({Role.HR}),
}

ACTION_ROLES: dict[str, frozenset[Role]] = {
    "campaign.create": frozenset({Role.PLANNING}),
    "campaign.edit": frozenset({Role.PLANNING}),
    "campaign.read": frozenset(
        {Role.PLANNING, Role.HEALTH_REVIEW, Role.HR, Role.STATE_COORDINATION, Role.EXECUTIVE}
    ),
    "catalog.read": frozenset(Role),
    "proposal.submit": frozenset({Role.STATE_COORDINATION}),
    "proposal.read": frozenset({Role.STATE_COORDINATION, Role.VALIDATOR, Role.HR, Role.EXECUTIVE}),
    "validation.read": frozenset({Role.VALIDATOR}),
    "validation.decide": frozenset({Role.VALIDATOR}),
    "cv.read": frozenset({Role.VALIDATOR, Role.STATE_COORDINATION, Role.HR}),
    "dashboard.read": frozenset({Role.EXECUTIVE, Role.HR}),
}


@dataclass(frozen=True, slots=True)
class NavItem:
    title: str
    href: str
    roles: frozenset[Role]


NAV_ITEMS: tuple[NavItem, ...] = (
    NavItem("Inicio", "/", frozenset(Role)),
    NavItem("Campañas", "/planeacion/campaigns", frozenset({Role.PLANNING})),
    NavItem("Revisión", "/atencion-salud/review", frozenset({Role.HEALTH_REVIEW})),
    NavItem("Activación", "/rh/campaigns", frozenset({Role.HR})),
    NavItem("Dashboard RH", "/rh/dashboard", frozenset({Role.HR})),
    NavItem("Propuestas", "/coordinacion/proposals", frozenset({Role.STATE_COORDINATION})),
    NavItem("Validaciones", "/validador/validations", frozenset({Role.VALIDATOR})),
    NavItem("Dashboard DG", "/dg/dashboard", frozenset({Role.EXECUTIVE})),
)


def has_any_role(actor_roles: Iterable[Role], required_roles: Iterable[Role]) -> bool:
    return not set(actor_roles).isdisjoint(required_roles)


def roles_for_transition(from_status: CampaignStatus, to_status: CampaignStatus) -> frozenset[Role] | None:
    """Return the roles allowed to move a campaign along an edge, or None if the edge is illegal."""
    return CAMPAIGN_TRANSITION_ROLES.get((from_status, to_status))


def roles_for_action(action: str) -> frozenset[Role]:
    try:
        return ACTION_ROLES[action]
    except KeyError:
        raise ValueError(f"unknown action: {action}") from None


def is_action_allowed(actor_roles: Iterable[Role], action: str) -> bool:
    return has_any_role(actor_roles, roles_for_action(action))


def visible_nav_items(actor_roles: Iterable[Role]) -> list[NavItem]:
    roles = set(actor_roles)
    return [item for item in NAV_ITEMS if has_any_role(roles, item.roles)]


def available_campaign_actions(status: CampaignStatus, actor_roles: Iterable[Role]) -> list[CampaignStatus]:
    """Target statuses the actor may move a campaign in ``status`` to."""
    roles = set(actor_roles)
    return [
        to_status
        for (from_status, to_status), allowed in CAMPAIGN_TRANSITION_ROLES.items()
        if from_status == status and has_any_role(roles, allowed)
    ]


def parse_roles(labels: Iterable[str]) -> frozenset[Role]:
    """Map identity-provider labels onto the closed role set, dropping unknown ones."""
    roles: set[Role] = set()
    for label in labels:
        try:
            roles.add(Role(label.strip().upper()))
        except ValueError:
            logger.warning("ignoring unknown role label=%r", label)
    return frozenset(roles)
