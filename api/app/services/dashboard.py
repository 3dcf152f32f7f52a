from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from app.core.auth import Actor
from app.core.authorization import CampaignStatus
from app.services.guards import require_action, translate_store_errors
from app.services.records import ProposalStatus
from app.services.store import DataStore


@dataclass(slots=True)
class DashboardSummary:
    campaigns_by_status: dict[str, int] = field(default_factory=dict)
    proposals_by_status: dict[str, int] = field(default_factory=dict)

    @property
    def total_campaigns(self) -> int:
        return sum(self.campaigns_by_status.values())

    @property
    def total_proposals(self) -> int:
        return sum(self.proposals_by_status.values())


async def build_dashboard_summary(store: DataStore, *, actor: Actor) -> DashboardSummary:
    """Count campaigns and proposals per status; every known status is present, zero-filled."""
    require_action(actor, "dashboard.read")
    with translate_store_errors():
        campaign_rows = await store.find("campaigns")
        proposal_rows = await store.find("proposals")

    campaign_counts = Counter(row["status"] for row in campaign_rows)
    proposal_counts = Counter(row["status"] for row in proposal_rows)
    return DashboardSummary(
        campaigns_by_status={status.value: campaign_counts.get(status.value, 0) for status in CampaignStatus},
        proposals_by_status={status.value: proposal_counts.get(status.value, 0) for status in ProposalStatus},
    )
