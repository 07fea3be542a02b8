from typing import List

from hospital_costing.schemas.dto.base_dto import BaseDTO


class FixedCostItemStateDTO(BaseDTO):
    template_id: str
    name: str
    monthly_cost: float = 0.0
    default_included: bool = True
    included: bool = True


class FixedCostSelectionDTO(BaseDTO):
    include_fixed_costs: bool = True
    items: List[FixedCostItemStateDTO] = []
