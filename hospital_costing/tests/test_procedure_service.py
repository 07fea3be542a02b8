import pytest

from hospital_costing.errors import ConflictError, NotFoundError, ValidationFailedError


def test_create_procedure_assigns_ids(services, snapshot, seed):
    created = seed(snapshot.id)

    assert created.procedure_id
    assert created.variants[0].variant_id
    assert created.variants[0].staff_mix[0].role_name == "Nurse"
    assert services.procedures.list_procedures(snapshot.id) == [created]


def test_create_procedure_accepts_camel_case_payload(services, snapshot):
    created = services.procedures.create_procedure(
        snapshot.id,
        {
            "procedureId": "p-botox",
            "name": "Botox",
            "variants": [
                {
                    "variantId": "v-50",
                    "label": "50u",
                    "salePrice": 200_000,
                    "totalMinutes": 15,
                    "staffMix": [{"roleName": "Doctor", "minutes": 10}],
                }
            ],
        },
    )

    assert created.procedure_id == "p-botox"
    assert created.variants[0].variant_id == "v-50"
    assert created.variants[0].staff_mix[0].participants == 1


def test_duplicate_procedure_id_conflicts(services, snapshot):
    payload = {"procedureId": "p1", "name": "Botox", "variants": [{"label": "a", "salePrice": 1, "totalMinutes": 1}]}
    services.procedures.create_procedure(snapshot.id, payload)

    with pytest.raises(ConflictError):
        services.procedures.create_procedure(snapshot.id, payload)


def test_procedure_needs_a_variant(services, snapshot):
    with pytest.raises(ValidationFailedError):
        services.procedures.create_procedure(snapshot.id, {"name": "Empty", "variants": []})


def test_create_procedure_in_unknown_snapshot(services):
    with pytest.raises(NotFoundError):
        services.procedures.create_procedure(
            "missing", {"name": "Botox", "variants": [{"label": "a", "salePrice": 1, "totalMinutes": 1}]}
        )


def test_update_variant_replaces_fields_and_keeps_id(services, snapshot, seed):
    created = seed(snapshot.id)
    variant_id = created.variants[0].variant_id

    updated = services.procedures.update_variant(
        snapshot.id,
        variant_id,
        {"variantId": "ignored", "label": "2cc", "salePrice": 900_000, "totalMinutes": 45},
    )

    variant = updated.variants[0]
    assert variant.variant_id == variant_id
    assert variant.label == "2cc"
    assert variant.sale_price == 900_000
    assert variant.staff_mix == []
    assert variant.consumables == []


def test_update_unknown_variant(services, snapshot, seed):
    seed(snapshot.id)
    with pytest.raises(NotFoundError):
        services.procedures.update_variant(snapshot.id, "missing", {"label": "x", "salePrice": 1, "totalMinutes": 1})


def test_delete_last_variant_removes_procedure(services, snapshot):
    created = services.procedures.create_procedure(
        snapshot.id,
        {
            "name": "Botox",
            "variants": [
                {"label": "50u", "salePrice": 1, "totalMinutes": 1},
                {"label": "100u", "salePrice": 2, "totalMinutes": 1},
            ],
        },
    )
    first, second = (v.variant_id for v in created.variants)

    services.procedures.delete_variant(snapshot.id, first)
    remaining = services.procedures.list_procedures(snapshot.id)
    assert [v.label for v in remaining[0].variants] == ["100u"]

    services.procedures.delete_variant(snapshot.id, second)
    assert services.procedures.list_procedures(snapshot.id) == []


def test_delete_variant_prunes_stored_result_rows(services, snapshot, seed):
    created = seed(snapshot.id)
    services.recalculation.recalculate(snapshot.id)
    assert len(services.results.get_results(snapshot.id)) == 1

    services.procedures.delete_variant(snapshot.id, created.variants[0].variant_id)

    assert services.results.get_results(snapshot.id) == []


def test_delete_unknown_variant(services, snapshot):
    with pytest.raises(NotFoundError):
        services.procedures.delete_variant(snapshot.id, "missing")


def test_delete_variant_rederives_stored_insights(services, snapshot):
    for name, label, price in [("Peel", "x", 100), ("Laser", "y", 900)]:
        services.procedures.create_procedure(
            snapshot.id,
            {"name": name, "variants": [{"label": label, "salePrice": price, "totalMinutes": 10}]},
        )
    services.recalculation.recalculate(snapshot.id)
    before = services.results.get_insights(snapshot.id)
    assert before.top_by_margin.procedure_name == "Laser"

    laser = services.procedures.list_procedures(snapshot.id)[1]
    services.procedures.delete_variant(snapshot.id, laser.variants[0].variant_id)

    rows = services.results.get_results(snapshot.id)
    insights = services.results.get_insights(snapshot.id)
    assert [r.procedure_name for r in rows] == ["Peel"]
    assert insights.top_by_margin.procedure_name == "Peel"
    assert insights.top_by_margin.row_index == 0
    assert insights.lowest_margin_rate.row_index < len(rows)
    # 环比保留
    assert insights.mom == before.mom
