from typing import Any, Dict, Union

from hospital_costing.schemas.dto.fixed_cost_dto import FixedCostSelectionDTO
from hospital_costing.services.document_store import DocumentStore, get_snapshot_or_raise


class FixedCostService:
    """
    Which fixed-cost templates a snapshot includes.

    The selection is recorded on the snapshot (include_fixed_costs,
    applied_fixed_cost_ids) but not yet allocated by the calculation engine.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_selection(self, snapshot_id: str) -> FixedCostSelectionDTO:
        document = self.store.load()
        get_snapshot_or_raise(document, snapshot_id)
        existing = document["fixed_cost_selections"].get(snapshot_id)
        if existing:
            return FixedCostSelectionDTO.model_validate(existing)
        return FixedCostSelectionDTO(include_fixed_costs=True, items=[])

    def update_selection(
        self,
        snapshot_id: str,
        payload: Union[FixedCostSelectionDTO, Dict[str, Any]],
    ) -> FixedCostSelectionDTO:
        '''
        Replace the selection and mirror it onto the snapshot:
        applied_fixed_cost_ids becomes the template ids of included items.
        '''
        payload = FixedCostSelectionDTO.coerce(payload)

        def _update(document: Dict[str, Any]) -> FixedCostSelectionDTO:
            snapshot = get_snapshot_or_raise(document, snapshot_id)
            document["fixed_cost_selections"][snapshot_id] = payload.model_dump(mode="json")
            snapshot["include_fixed_costs"] = payload.include_fixed_costs
            snapshot["applied_fixed_cost_ids"] = [
                item.template_id for item in payload.items if item.included
            ]
            snapshot["updated_at"] = self.store.now()
            return payload

        return self.store.mutate(_update)
