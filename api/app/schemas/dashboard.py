from pydantic import BaseModel, Field


class DashboardSummaryOut(BaseModel):
    campaigns_by_status: dict[str, int] = Field(default_factory=dict)
    proposals_by_status: dict[str, int] = Field(default_factory=dict)
    total_campaigns: int = 0
    total_proposals: int = 0
