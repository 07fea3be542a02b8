from typing import List, Optional

from pydantic import Field

from hospital_costing.schemas.dto.base_dto import BaseDTO


class StaffMixEntryDTO(BaseDTO):
    role_id: Optional[str] = None
    role_name: str
    participants: int = 1
    minutes: float = 0.0


class ConsumableUsageDTO(BaseDTO):
    consumable_id: Optional[str] = None
    consumable_name: str
    quantity: float = 0.0
    unit: str = ""


class EquipmentLinkDTO(BaseDTO):
    fixed_cost_template_id: str
    notes: Optional[str] = None


class ProcedureVariantInput(BaseDTO):
    variant_id: Optional[str] = None
    label: str
    sale_price: float
    total_minutes: float
    equipment_minutes: Optional[float] = None
    fixed_cost_template_id: Optional[str] = None
    case_count: Optional[int] = None
    staff_mix: List[StaffMixEntryDTO] = []
    consumables: List[ConsumableUsageDTO] = []
    equipment_links: List[EquipmentLinkDTO] = []


class ProcedureDefinitionInput(BaseDTO):
    procedure_id: Optional[str] = None
    name: str
    variants: List[ProcedureVariantInput] = Field(min_length=1)


class ProcedureVariantDTO(BaseDTO):
    """Stored and returned shape of a variant; ids are always assigned."""
    variant_id: str
    label: str
    sale_price: float
    total_minutes: float
    equipment_minutes: Optional[float] = None
    fixed_cost_template_id: Optional[str] = None
    case_count: Optional[int] = None
    staff_mix: List[StaffMixEntryDTO] = []
    consumables: List[ConsumableUsageDTO] = []
    equipment_links: List[EquipmentLinkDTO] = []


class ProcedureSummaryDTO(BaseDTO):
    procedure_id: str
    name: str
    variants: List[ProcedureVariantDTO] = []
