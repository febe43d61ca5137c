"""Budget anomaly schemas."""
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AnomalyType(str, Enum):
    SPENDING_SPIKE = "SPENDING_SPIKE"
    VELOCITY_HIGH = "VELOCITY_HIGH"
    VELOCITY_LOW = "VELOCITY_LOW"
    OVER_BUDGET = "OVER_BUDGET"
    NEAR_BUDGET = "NEAR_BUDGET"
    LARGE_VARIANCE = "LARGE_VARIANCE"
    DORMANT_CATEGORY = "DORMANT_CATEGORY"
    CONCENTRATION_RISK = "CONCENTRATION_RISK"


class AnomalySeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AnomalySeverity.CRITICAL: 0,
    AnomalySeverity.WARNING: 1,
    AnomalySeverity.INFO: 2,
}


class Anomaly(BaseModel):
    type: AnomalyType
    severity: AnomalySeverity
    message: str
    suggestion: str | None = None
    budget_id: int | None = None
    draw_id: int | None = None
    line_id: int | None = None
    category: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class AnomalyReport(BaseModel):
    project_id: int
    counts: dict[AnomalySeverity, int]
    anomalies: list[Anomaly]
