from typing import List, Optional
from datetime import datetime

from pydantic import ConfigDict

from hospital_costing.db.enums import JobStatus, SortOrder
from hospital_costing.schemas.dto.base_dto import BaseDTO


class CostBreakdownDTO(BaseDTO):
    '''
    Direct cost of one variant, by category.
    Extra keys are allowed so future cost categories can be added without a
    schema change; facility_fixed / equipment_fixed are not allocated yet and
    stay 0.
    '''
    model_config = ConfigDict(extra="allow")

    labor: float = 0.0
    consumables: float = 0.0
    facility_fixed: float = 0.0
    equipment_fixed: float = 0.0

    def total(self) -> float:
        extra = sum(
            value for value in (self.model_extra or {}).values()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        )
        return self.labor + self.consumables + self.facility_fixed + self.equipment_fixed + extra


class CostingResultRowDTO(BaseDTO):
    procedure_name: str
    variant_name: str
    case_count: int = 0
    sale_price: float
    total_cost: float
    margin: float
    margin_rate: float
    margin_per_minute: Optional[float] = None
    cost_breakdown: CostBreakdownDTO
    # staff / consumable references that contributed zero cost
    unresolved_references: List[str] = []


class InsightRowRefDTO(BaseDTO):
    row_index: int
    procedure_name: str
    variant_name: str


class TopByVolumeDTO(InsightRowRefDTO):
    cases: int


class TopByMarginDTO(InsightRowRefDTO):
    margin: float


class LowestMarginRateDTO(InsightRowRefDTO):
    margin_rate: float


class MomChangeMetricDTO(BaseDTO):
    current: float
    previous: Optional[float] = None
    change: Optional[float] = None
    ratio: Optional[float] = None


class MomInsightDTO(BaseDTO):
    previous_snapshot_id: Optional[str] = None
    previous_month: Optional[str] = None
    volume: Optional[MomChangeMetricDTO] = None
    margin: Optional[MomChangeMetricDTO] = None


class InsightPayloadDTO(BaseDTO):
    top_by_volume: Optional[TopByVolumeDTO] = None
    top_by_margin: Optional[TopByMarginDTO] = None
    lowest_margin_rate: Optional[LowestMarginRateDTO] = None
    mom: Optional[MomInsightDTO] = None
    notes: Optional[str] = None


class CalculationOutcome(BaseDTO):
    rows: List[CostingResultRowDTO] = []
    insights: InsightPayloadDTO = InsightPayloadDTO()


class RecalculationJobDTO(BaseDTO):
    job_id: str
    snapshot_id: str
    status: JobStatus
    queued_at: datetime
    completed_at: Optional[datetime] = None


class ResultQueryParams(BaseDTO):
    search: Optional[str] = None
    sort: Optional[str] = None
    order: SortOrder = SortOrder.ASC
