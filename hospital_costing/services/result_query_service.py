import io
from typing import List, Optional, Union

import pandas as pd
from pydantic.alias_generators import to_snake

from hospital_costing.db.enums import ExportFormat, SortOrder
from hospital_costing.errors import ValidationFailedError
from hospital_costing.schemas.dto.result_dto import (
    CostingResultRowDTO,
    InsightPayloadDTO,
    MomInsightDTO,
    ResultQueryParams,
)
from hospital_costing.services.calculation_engine import month_over_month
from hospital_costing.services.document_store import DocumentStore, get_snapshot_or_raise
from hospital_costing.services.recalculation_service import (
    find_previous_calculated_snapshot,
    stored_rows,
)

NUMERIC_SORT_FIELDS = {
    "case_count",
    "sale_price",
    "total_cost",
    "margin",
    "margin_rate",
    "margin_per_minute",
}

EXPORT_COLUMNS = ["Procedure", "Variant", "Cases", "Sale Price", "Total Cost", "Margin", "Margin Rate"]


def _format_number(value: float) -> str:
    # 整数金额不带 .0
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def sort_rows(
    rows: List[CostingResultRowDTO],
    field: str,
    order: SortOrder,
) -> List[CostingResultRowDTO]:
    '''
    Stable sort on a numeric field. Rows without a value (margin_per_minute
    of a zero-minute variant) go last in both directions. A non-numeric
    field leaves the insertion order untouched.
    '''
    field = to_snake(field)
    if field not in NUMERIC_SORT_FIELDS:
        return list(rows)
    valued = [row for row in rows if getattr(row, field) is not None]
    empty = [row for row in rows if getattr(row, field) is None]
    valued = sorted(
        valued,
        key=lambda row: getattr(row, field),
        reverse=order == SortOrder.DESC,
    )
    return valued + empty


class ResultQueryService:
    """
    Read side of the calculation results: filter / sort, insights,
    month-over-month comparison and flat-file export.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_results(
        self,
        snapshot_id: str,
        *,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        order: Union[SortOrder, str] = SortOrder.ASC,
    ) -> List[CostingResultRowDTO]:
        '''
        Stored rows of the last recalculation.

        :param search: case-insensitive substring of procedure OR variant name
        :type search: Optional[str]
        :param sort: numeric field name (snake_case or camelCase)
        :type sort: Optional[str]
        :param order: "asc" or "desc"
        :type order: SortOrder | str
        '''
        params = ResultQueryParams.coerce({"search": search, "sort": sort, "order": order})
        document = self.store.load()
        get_snapshot_or_raise(document, snapshot_id)
        rows = stored_rows(document, snapshot_id)

        if params.search:
            keyword = params.search.lower()
            rows = [
                row for row in rows
                if keyword in row.procedure_name.lower() or keyword in row.variant_name.lower()
            ]
        if params.sort:
            rows = sort_rows(rows, params.sort, params.order)
        return rows

    def get_insights(self, snapshot_id: str) -> InsightPayloadDTO:
        document = self.store.load()
        get_snapshot_or_raise(document, snapshot_id)
        stored = document["results"].get(snapshot_id)
        if not stored:
            return InsightPayloadDTO()
        return InsightPayloadDTO.model_validate(stored["insights"])

    def compare_months(self, snapshot_id: str) -> MomInsightDTO:
        '''
        Month-over-month comparison of the snapshot's stored results with the
        latest earlier month that has results, computed on the fly.
        '''
        document = self.store.load()
        snapshot = get_snapshot_or_raise(document, snapshot_id)
        current = stored_rows(document, snapshot_id)
        previous = find_previous_calculated_snapshot(document, snapshot["month"])
        if previous is None:
            return month_over_month(current, None)
        return month_over_month(
            current,
            stored_rows(document, previous["id"]),
            previous_snapshot_id=previous["id"],
            previous_month=previous["month"],
        )

    def export_results(self, snapshot_id: str, export_format: Union[ExportFormat, str]) -> bytes:
        '''
        Render the stored rows as a flat table.

        csv  -> UTF-8 comma separated text, margin rate with 4 decimals
        xlsx -> Excel workbook (openpyxl), margin rate rounded to 4 decimals
        '''
        if not isinstance(export_format, ExportFormat):
            export_format = str(export_format).lower()
        try:
            export_format = ExportFormat(export_format)
        except ValueError as e:
            raise ValidationFailedError(f"Unsupported export format: {export_format}") from e

        rows = self.get_results(snapshot_id)

        if export_format == ExportFormat.CSV:
            df = pd.DataFrame(
                [
                    [
                        row.procedure_name,
                        row.variant_name,
                        str(row.case_count),
                        _format_number(row.sale_price),
                        _format_number(row.total_cost),
                        _format_number(row.margin),
                        f"{row.margin_rate:.4f}",
                    ]
                    for row in rows
                ],
                columns=EXPORT_COLUMNS,
            )
            return df.to_csv(index=False, lineterminator="\n").encode("utf-8")

        df = pd.DataFrame(
            [
                [
                    row.procedure_name,
                    row.variant_name,
                    row.case_count,
                    row.sale_price,
                    row.total_cost,
                    row.margin,
                    round(row.margin_rate, 4),
                ]
                for row in rows
            ],
            columns=EXPORT_COLUMNS,
        )
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Costing Results")
        return output.getvalue()
