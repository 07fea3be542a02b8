from typing import Optional

from hospital_costing.schemas.dto.base_dto import BaseDTO


class StaffCapacityDTO(BaseDTO):
    '''
    One role of a snapshot's staff capacity table.
    available_minutes == 0 is tolerated: the role's cost is undefined and
    contributes nothing to labor cost.
    '''
    role_id: Optional[str] = None
    role_name: str
    monthly_payroll: float
    available_minutes: float


class ConsumablePricingDTO(BaseDTO):
    '''
    One consumable of a snapshot's pricing table.
    purchase_cost buys yield_quantity usable units.
    '''
    consumable_id: Optional[str] = None
    consumable_name: str
    purchase_cost: float
    yield_quantity: float
    unit: str = ""
