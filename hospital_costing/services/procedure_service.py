from typing import Any, Dict, List, Optional, Tuple, Union

from hospital_costing.errors import ConflictError, NotFoundError
from hospital_costing.logger import get_logger
from hospital_costing.schemas.dto.procedure_dto import (
    ProcedureDefinitionInput,
    ProcedureSummaryDTO,
    ProcedureVariantInput,
)
from hospital_costing.schemas.dto.result_dto import CostingResultRowDTO
from hospital_costing.services.calculation_engine import derive_insights
from hospital_costing.services.document_store import DocumentStore, get_snapshot_or_raise

logger = get_logger(__name__)


def _find_variant(
    definitions: List[Dict[str, Any]],
    variant_id: str,
) -> Tuple[Optional[int], Optional[Dict[str, Any]]]:
    '''Scan every procedure for the variant; returns (procedure index, variant)'''
    for index, definition in enumerate(definitions):
        for variant in definition["variants"]:
            if variant["variant_id"] == variant_id:
                return index, variant
    return None, None


class ProcedureService:
    """
    Procedure definitions and their priced variants within a snapshot.

    Staff and consumable references inside a variant are stored as given and
    resolved only at calculation time (no foreign-key check on save).
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def list_procedures(self, snapshot_id: str) -> List[ProcedureSummaryDTO]:
        document = self.store.load()
        get_snapshot_or_raise(document, snapshot_id)
        return [
            ProcedureSummaryDTO.model_validate(d)
            for d in document["procedures"].get(snapshot_id, [])
        ]

    def create_procedure(
        self,
        snapshot_id: str,
        payload: Union[ProcedureDefinitionInput, Dict[str, Any]],
    ) -> ProcedureSummaryDTO:
        '''
        Append a procedure to the snapshot's catalog.
        Missing procedure / variant ids are generated.

        :raises ConflictError: the procedure id already exists in the snapshot
        '''
        payload = ProcedureDefinitionInput.coerce(payload)

        def _create(document: Dict[str, Any]) -> ProcedureSummaryDTO:
            get_snapshot_or_raise(document, snapshot_id)
            definitions = document["procedures"].setdefault(snapshot_id, [])
            procedure_id = payload.procedure_id or self.store.generate_id()
            if any(d["procedure_id"] == procedure_id for d in definitions):
                raise ConflictError(f"Procedure({procedure_id}) already exists")

            stored = {
                "procedure_id": procedure_id,
                "name": payload.name,
                "variants": [self._build_variant(v) for v in payload.variants],
            }
            definitions.append(stored)
            return ProcedureSummaryDTO.model_validate(stored)

        summary = self.store.mutate(_create)
        logger.info(
            "Created procedure %s (%s) in snapshot %s with %d variant(s)",
            summary.procedure_id,
            summary.name,
            snapshot_id,
            len(summary.variants),
        )
        return summary

    def update_variant(
        self,
        snapshot_id: str,
        variant_id: str,
        payload: Union[ProcedureVariantInput, Dict[str, Any]],
    ) -> ProcedureSummaryDTO:
        '''
        Replace a variant's scalar fields and its staff_mix, consumables and
        equipment_links lists wholesale. The variant keeps its id.

        :return: the parent procedure after the update
        :raises NotFoundError: no procedure in the snapshot has the variant
        '''
        payload = ProcedureVariantInput.coerce(payload)

        def _update(document: Dict[str, Any]) -> ProcedureSummaryDTO:
            get_snapshot_or_raise(document, snapshot_id)
            definitions = document["procedures"].get(snapshot_id, [])
            index, variant = _find_variant(definitions, variant_id)
            if variant is None:
                raise NotFoundError(f"Variant({variant_id}) not found")
            variant.update(self._build_variant(payload, variant_id=variant_id))
            return ProcedureSummaryDTO.model_validate(definitions[index])

        return self.store.mutate(_update)

    def delete_variant(self, snapshot_id: str, variant_id: str) -> None:
        '''
        Remove a variant. The procedure goes with its last variant.
        Stored result rows for the same (procedure name, variant label) are
        pruned so they do not linger until the next recalculation, and the
        stored insights are derived again from the remaining rows.
        '''

        def _delete(document: Dict[str, Any]) -> None:
            get_snapshot_or_raise(document, snapshot_id)
            definitions = document["procedures"].get(snapshot_id, [])
            index, variant = _find_variant(definitions, variant_id)
            if variant is None:
                raise NotFoundError(f"Variant({variant_id}) not found")

            definition = definitions[index]
            procedure_name = definition["name"]
            variant_label = variant["label"]
            definition["variants"] = [
                v for v in definition["variants"] if v["variant_id"] != variant_id
            ]
            if not definition["variants"]:
                del definitions[index]
            document["procedures"][snapshot_id] = definitions

            existing = document["results"].get(snapshot_id)
            if existing:
                existing["rows"] = [
                    row for row in existing["rows"]
                    if not (row["procedure_name"] == procedure_name and row["variant_name"] == variant_label)
                ]
                # 洞察按剩余行重新计算，环比与备注保持不变
                previous_insights = existing.get("insights") or {}
                insights = derive_insights(
                    [CostingResultRowDTO.model_validate(row) for row in existing["rows"]]
                ).model_dump(mode="json")
                insights["mom"] = previous_insights.get("mom")
                insights["notes"] = previous_insights.get("notes")
                existing["insights"] = insights

        self.store.mutate(_delete)
        logger.info("Deleted variant %s from snapshot %s", variant_id, snapshot_id)

    def _build_variant(
        self,
        variant: ProcedureVariantInput,
        *,
        variant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        data = variant.model_dump(mode="json")
        data["variant_id"] = variant_id or variant.variant_id or self.store.generate_id()
        return data
