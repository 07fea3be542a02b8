import io

import pandas as pd
import pytest

from hospital_costing.db.enums import ExportFormat
from hospital_costing.errors import NotFoundError, ValidationFailedError


@pytest.fixture
def calculated(services, snapshot, seed):
    seed(snapshot.id, case_count=5)
    services.procedures.create_procedure(
        snapshot.id,
        {
            "name": "Botox",
            "variants": [
                {"label": "50u", "salePrice": 200_000, "totalMinutes": 0, "caseCount": 9},
                {"label": "100u", "salePrice": 350_000, "totalMinutes": 20, "caseCount": 2},
            ],
        },
    )
    services.recalculation.recalculate(snapshot.id)
    return snapshot


def test_results_before_recalculation_are_empty(services, snapshot):
    assert services.results.get_results(snapshot.id) == []
    assert services.results.get_insights(snapshot.id).top_by_margin is None


def test_results_of_unknown_snapshot(services):
    with pytest.raises(NotFoundError):
        services.results.get_results("missing")


def test_search_is_case_insensitive_on_procedure_or_variant(services, calculated):
    by_procedure = services.results.get_results(calculated.id, search="filler")
    assert [r.procedure_name for r in by_procedure] == ["Filler Injection"]

    by_variant = services.results.get_results(calculated.id, search="100U")
    assert [r.variant_name for r in by_variant] == ["100u"]

    assert services.results.get_results(calculated.id, search="laser") == []


def test_sort_by_numeric_field(services, calculated):
    ascending = services.results.get_results(calculated.id, sort="salePrice")
    assert [r.sale_price for r in ascending] == [200_000, 350_000, 500_000]

    descending = services.results.get_results(calculated.id, sort="case_count", order="desc")
    assert [r.case_count for r in descending] == [9, 5, 2]


def test_sort_puts_missing_values_last(services, calculated):
    rows = services.results.get_results(calculated.id, sort="marginPerMinute", order="desc")

    assert rows[-1].variant_name == "50u"
    assert rows[-1].margin_per_minute is None


def test_sort_on_unknown_field_keeps_catalog_order(services, calculated):
    rows = services.results.get_results(calculated.id, sort="procedureName")
    assert [r.variant_name for r in rows] == ["1cc", "50u", "100u"]


def test_invalid_sort_order(services, calculated):
    with pytest.raises(ValidationFailedError):
        services.results.get_results(calculated.id, sort="margin", order="sideways")


def test_insights_are_stored_with_results(services, calculated):
    insights = services.results.get_insights(calculated.id)

    assert insights.top_by_volume.variant_name == "50u"
    assert insights.top_by_volume.cases == 9
    assert insights.top_by_margin.procedure_name == "Filler Injection"
    assert insights.lowest_margin_rate.procedure_name == "Filler Injection"


def test_export_csv(services, calculated):
    content = services.results.export_results(calculated.id, "CSV").decode("utf-8")

    lines = content.splitlines()
    assert lines[0] == "Procedure,Variant,Cases,Sale Price,Total Cost,Margin,Margin Rate"
    assert lines[1] == "Filler Injection,1cc,5,500000,65000,435000,0.8700"
    assert len(lines) == 4


def test_export_xlsx(services, calculated):
    content = services.results.export_results(calculated.id, ExportFormat.XLSX)

    df = pd.read_excel(io.BytesIO(content), sheet_name="Costing Results")
    assert list(df.columns) == ["Procedure", "Variant", "Cases", "Sale Price", "Total Cost", "Margin", "Margin Rate"]
    assert list(df["Variant"]) == ["1cc", "50u", "100u"]
    assert df.loc[0, "Margin Rate"] == pytest.approx(0.87)


def test_export_unsupported_format(services, calculated):
    with pytest.raises(ValidationFailedError):
        services.results.export_results(calculated.id, "pdf")
