from itertools import product

import pytest

from app.core.authorization import (
    ACTION_ROLES,
    CAMPAIGN_TRANSITION_ROLES,
    CampaignStatus,
    Role,
    available_campaign_actions,
    has_any_role,
    is_action_allowed,
    parse_roles,
    roles_for_action,
    roles_for_transition,
    visible_nav_items,
)


@pytest.mark.parametrize(
    ("actor_roles", "required_roles", "expected"),
    [
        ({Role.PLANNING}, {Role.PLANNING}, True),
        ({Role.PLANNING, Role.HR}, {Role.HR}, True),
        ({Role.VALIDATOR}, {Role.PLANNING, Role.HR}, False),
        (set(), {Role.PLANNING}, False),
        ({Role.PLANNING}, set(), False),
    ],
)
def test_has_any_role_is_true_only_for_a_shared_role(actor_roles, required_roles, expected) -> None:
    assert has_any_role(actor_roles, required_roles) is expected


def test_each_transition_edge_is_owned_by_exactly_one_role() -> None:
    assert roles_for_transition(CampaignStatus.DRAFT, CampaignStatus.UNDER_REVIEW) == {Role.PLANNING}
    assert roles_for_transition(CampaignStatus.UNDER_REVIEW, CampaignStatus.APPROVED) == {Role.HEALTH_REVIEW}
    assert roles_for_transition(CampaignStatus.UNDER_REVIEW, CampaignStatus.DRAFT) == {Role.HEALTH_REVIEW}
    assert roles_for_transition(CampaignStatus.APPROVED, CampaignStatus.ACTIVE) == {Role.HR}
    assert roles_for_transition(CampaignStatus.ACTIVE, CampaignStatus.INACTIVE) == {Role.HR}
    assert len(CAMPAIGN_TRANSITION_ROLES) == 5


def test_unlisted_edges_are_illegal() -> None:
    for from_status, to_status in product(CampaignStatus, CampaignStatus):
        if (from_status, to_status) in CAMPAIGN_TRANSITION_ROLES:
            continue
        assert roles_for_transition(from_status, to_status) is None


def test_inactive_is_terminal() -> None:
    assert all(from_status != CampaignStatus.INACTIVE for from_status, _ in CAMPAIGN_TRANSITION_ROLES)
    assert available_campaign_actions(CampaignStatus.INACTIVE, set(Role)) == []


def test_available_campaign_actions_follow_role_table() -> None:
    assert available_campaign_actions(CampaignStatus.UNDER_REVIEW, {Role.HEALTH_REVIEW}) == [
        CampaignStatus.APPROVED,
        CampaignStatus.DRAFT,
    ]
    assert available_campaign_actions(CampaignStatus.UNDER_REVIEW, {Role.PLANNING}) == []
    assert available_campaign_actions(CampaignStatus.APPROVED, {Role.HR}) == [CampaignStatus.ACTIVE]


def test_action_gate_matches_declared_roles_for_every_role() -> None:
    for action, allowed in ACTION_ROLES.items():
        for role in Role:
            assert is_action_allowed({role}, action) is (role in allowed)


def test_executive_is_read_only() -> None:
    writes = {"campaign.create", "campaign.edit", "proposal.submit", "validation.decide"}
    for action in writes:
        assert not is_action_allowed({Role.EXECUTIVE}, action)
    assert is_action_allowed({Role.EXECUTIVE}, "dashboard.read")


def test_unknown_action_is_rejected() -> None:
    with pytest.raises(ValueError):
        roles_for_action("campaign.delete")


def test_visible_nav_items_filter_by_role() -> None:
    hrefs = [item.href for item in visible_nav_items({Role.HR})]
    assert hrefs == ["/", "/rh/campaigns", "/rh/dashboard"]
    assert [item.href for item in visible_nav_items(set())] == []


def test_parse_roles_normalizes_labels_and_drops_unknown(caplog: pytest.LogCaptureFixture) -> None:
    roles = parse_roles([" rh ", "VALIDADOR", "SUPERUSER"])
    assert roles == {Role.HR, Role.VALIDATOR}
    assert "SUPERUSER" in caplog.text
