"""
Pure calculation of per-variant unit economics and snapshot insights.

Nothing here touches the database: callers hand in the snapshot's staff
capacity table, consumable pricing table and procedure catalog, and get back
result rows plus an insight payload.

Missing references and zero denominators never raise; the affected line
contributes zero cost and is listed in the row's unresolved_references.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from hospital_costing.schemas.dto.procedure_dto import (
    ConsumableUsageDTO,
    ProcedureSummaryDTO,
    ProcedureVariantDTO,
    StaffMixEntryDTO,
)
from hospital_costing.schemas.dto.registry_dto import ConsumablePricingDTO, StaffCapacityDTO
from hospital_costing.schemas.dto.result_dto import (
    CalculationOutcome,
    CostBreakdownDTO,
    CostingResultRowDTO,
    InsightPayloadDTO,
    LowestMarginRateDTO,
    MomChangeMetricDTO,
    MomInsightDTO,
    TopByMarginDTO,
    TopByVolumeDTO,
)


def build_staff_map(staff: Iterable[StaffCapacityDTO]) -> Dict[str, StaffCapacityDTO]:
    '''Index staff rows by role id (when present) and by lowercased role name'''
    lookup: Dict[str, StaffCapacityDTO] = {}
    for entry in staff:
        if entry.role_id:
            lookup[entry.role_id] = entry
        lookup[entry.role_name.lower()] = entry
    return lookup


def build_consumable_map(consumables: Iterable[ConsumablePricingDTO]) -> Dict[str, ConsumablePricingDTO]:
    '''Index consumable rows by consumable id (when present) and by lowercased name'''
    lookup: Dict[str, ConsumablePricingDTO] = {}
    for entry in consumables:
        if entry.consumable_id:
            lookup[entry.consumable_id] = entry
        lookup[entry.consumable_name.lower()] = entry
    return lookup


def _resolve(lookup: Dict, ref_id: Optional[str], ref_name: str):
    # id 优先，其次名称（不区分大小写）
    matched = lookup.get(ref_id) if ref_id else None
    if matched is not None:
        return matched
    return lookup.get(ref_name.lower())


def _labor_cost(
    staff_mix: List[StaffMixEntryDTO],
    staff_map: Dict[str, StaffCapacityDTO],
    unresolved: List[str],
) -> float:
    labor = 0.0
    for mix in staff_mix:
        entry = _resolve(staff_map, mix.role_id, mix.role_name)
        if entry is None:
            unresolved.append(f"staff:{mix.role_id or mix.role_name}")
            continue
        if not entry.available_minutes:
            unresolved.append(f"staff:{mix.role_id or mix.role_name}:no_available_minutes")
            continue
        cost_per_minute = entry.monthly_payroll / entry.available_minutes
        labor += cost_per_minute * mix.minutes * max(mix.participants, 1)
    return labor


def _consumable_cost(
    usages: List[ConsumableUsageDTO],
    consumable_map: Dict[str, ConsumablePricingDTO],
    unresolved: List[str],
) -> float:
    total = 0.0
    for usage in usages:
        entry = _resolve(consumable_map, usage.consumable_id, usage.consumable_name)
        if entry is None:
            unresolved.append(f"consumable:{usage.consumable_id or usage.consumable_name}")
            continue
        if not entry.yield_quantity:
            unresolved.append(f"consumable:{usage.consumable_id or usage.consumable_name}:no_yield")
            continue
        unit_cost = entry.purchase_cost / entry.yield_quantity
        total += unit_cost * usage.quantity
    return total


def calculate_cost_breakdown(
    variant: ProcedureVariantDTO,
    staff_map: Dict[str, StaffCapacityDTO],
    consumable_map: Dict[str, ConsumablePricingDTO],
) -> Tuple[CostBreakdownDTO, List[str]]:
    '''
    Direct cost of one variant.

    :return: the breakdown and the references that contributed zero cost
    :rtype: Tuple[CostBreakdownDTO, List[str]]
    '''
    unresolved: List[str] = []
    breakdown = CostBreakdownDTO(
        labor=_labor_cost(variant.staff_mix, staff_map, unresolved),
        consumables=_consumable_cost(variant.consumables, consumable_map, unresolved),
        # 固定成本分摊尚未接入计算
        facility_fixed=0.0,
        equipment_fixed=0.0,
    )
    return breakdown, unresolved


def build_result_row(
    procedure_name: str,
    variant: ProcedureVariantDTO,
    staff_map: Dict[str, StaffCapacityDTO],
    consumable_map: Dict[str, ConsumablePricingDTO],
) -> CostingResultRowDTO:
    breakdown, unresolved = calculate_cost_breakdown(variant, staff_map, consumable_map)
    total_cost = breakdown.total()
    margin = variant.sale_price - total_cost
    margin_rate = margin / variant.sale_price if variant.sale_price > 0 else 0.0
    margin_per_minute = margin / variant.total_minutes if variant.total_minutes > 0 else None

    return CostingResultRowDTO(
        procedure_name=procedure_name,
        variant_name=variant.label,
        case_count=variant.case_count or 0,
        sale_price=variant.sale_price,
        total_cost=total_cost,
        margin=margin,
        margin_rate=margin_rate,
        margin_per_minute=margin_per_minute,
        cost_breakdown=breakdown,
        unresolved_references=unresolved,
    )


def derive_insights(rows: List[CostingResultRowDTO]) -> InsightPayloadDTO:
    '''
    Snapshot-level highlights from one linear scan.

    Ties keep the earliest row in catalog order (strict comparisons).
    - top_by_volume: only when the largest case count is > 0
    - top_by_margin: only when the largest margin is > 0
    - lowest_margin_rate: always present when rows exist, no floor
    '''
    insights = InsightPayloadDTO()
    if not rows:
        return insights

    top_volume_index = 0
    top_margin_index = 0
    lowest_rate_index = 0
    for index, row in enumerate(rows):
        if row.case_count > rows[top_volume_index].case_count:
            top_volume_index = index
        if row.margin > rows[top_margin_index].margin:
            top_margin_index = index
        if row.margin_rate < rows[lowest_rate_index].margin_rate:
            lowest_rate_index = index

    top_volume = rows[top_volume_index]
    if top_volume.case_count > 0:
        insights.top_by_volume = TopByVolumeDTO(
            row_index=top_volume_index,
            procedure_name=top_volume.procedure_name,
            variant_name=top_volume.variant_name,
            cases=top_volume.case_count,
        )

    top_margin = rows[top_margin_index]
    if top_margin.margin > 0:
        insights.top_by_margin = TopByMarginDTO(
            row_index=top_margin_index,
            procedure_name=top_margin.procedure_name,
            variant_name=top_margin.variant_name,
            margin=top_margin.margin,
        )

    lowest = rows[lowest_rate_index]
    insights.lowest_margin_rate = LowestMarginRateDTO(
        row_index=lowest_rate_index,
        procedure_name=lowest.procedure_name,
        variant_name=lowest.variant_name,
        margin_rate=lowest.margin_rate,
    )
    return insights


def calculate_results(
    staff: Iterable[StaffCapacityDTO],
    consumables: Iterable[ConsumablePricingDTO],
    procedures: Iterable[ProcedureSummaryDTO],
) -> CalculationOutcome:
    """
    Produce one result row per variant, in catalog order, plus insights.
    """
    staff_map = build_staff_map(staff)
    consumable_map = build_consumable_map(consumables)

    rows: List[CostingResultRowDTO] = []
    for definition in procedures:
        for variant in definition.variants:
            rows.append(build_result_row(definition.name, variant, staff_map, consumable_map))

    return CalculationOutcome(rows=rows, insights=derive_insights(rows))


def _change_metric(current: float, previous: Optional[float]) -> MomChangeMetricDTO:
    if previous is None:
        return MomChangeMetricDTO(current=current)
    change = current - previous
    # 上月为 0 时比率无意义；按绝对值计算，负基数时方向不反转
    ratio = change / abs(previous) if previous else None
    return MomChangeMetricDTO(current=current, previous=previous, change=change, ratio=ratio)


def month_over_month(
    current_rows: List[CostingResultRowDTO],
    previous_rows: Optional[List[CostingResultRowDTO]],
    *,
    previous_snapshot_id: Optional[str] = None,
    previous_month: Optional[str] = None,
) -> MomInsightDTO:
    '''
    Compare aggregate volume (sum of case counts) and aggregate margin (sum
    of row margins) with a previous result set.
    previous_rows=None means there is nothing to compare with: only the
    current figures are filled in.
    '''
    current_volume = float(sum(row.case_count for row in current_rows))
    current_margin = sum(row.margin for row in current_rows)
    if previous_rows is None:
        return MomInsightDTO(
            volume=_change_metric(current_volume, None),
            margin=_change_metric(current_margin, None),
        )
    return MomInsightDTO(
        previous_snapshot_id=previous_snapshot_id,
        previous_month=previous_month,
        volume=_change_metric(current_volume, float(sum(row.case_count for row in previous_rows))),
        margin=_change_metric(current_margin, sum(row.margin for row in previous_rows)),
    )
