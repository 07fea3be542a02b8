from typing import Any, Dict, List, Optional
from datetime import datetime

from pydantic import Field

from hospital_costing.db.enums import SnapshotStatus
from hospital_costing.schemas.dto.base_dto import BaseDTO

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class SnapshotCreatePayload(BaseDTO):
    month: str = Field(pattern=MONTH_PATTERN)  # YYYY-MM
    include_fixed_costs: bool = True
    source_snapshot_id: Optional[str] = None


class SnapshotUpdatePayload(BaseDTO):
    status: Optional[SnapshotStatus] = None
    include_fixed_costs: Optional[bool] = None


class SnapshotSummaryDTO(BaseDTO):
    id: str
    month: str
    status: SnapshotStatus
    include_fixed_costs: bool
    locked_at: Optional[datetime] = None
    last_calculated_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_stored(cls, snapshot: Dict[str, Any]):
        return cls.model_validate(snapshot)


class SnapshotDetailDTO(SnapshotSummaryDTO):
    applied_fixed_cost_ids: List[str] = []
    locked_by: Optional[str] = None
    updated_at: datetime
