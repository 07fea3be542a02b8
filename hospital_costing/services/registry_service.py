from typing import Any, Dict, Iterable, List, Union

from hospital_costing.logger import get_logger
from hospital_costing.schemas.dto.registry_dto import ConsumablePricingDTO, StaffCapacityDTO
from hospital_costing.services.document_store import DocumentStore, get_snapshot_or_raise

logger = get_logger(__name__)


class RegistryService:
    """
    Staff capacity and consumable pricing tables of a snapshot.

    Both tables are replace-on-save: upsert overwrites the whole list, there
    is no per-row update or delete. Callers rebuild the full list and resubmit.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # ======================================================
    # 👩‍⚕️ Staff capacity
    # ======================================================

    def get_staff(self, snapshot_id: str) -> List[StaffCapacityDTO]:
        document = self.store.load()
        get_snapshot_or_raise(document, snapshot_id)
        return [StaffCapacityDTO.model_validate(e) for e in document["staff"].get(snapshot_id, [])]

    def upsert_staff(
        self,
        snapshot_id: str,
        entries: Iterable[Union[StaffCapacityDTO, Dict[str, Any]]],
    ) -> None:
        rows = [StaffCapacityDTO.coerce(e).model_dump(mode="json") for e in entries]
        self._replace("staff", snapshot_id, rows)

    # ======================================================
    # 💉 Consumable pricing
    # ======================================================

    def get_consumables(self, snapshot_id: str) -> List[ConsumablePricingDTO]:
        document = self.store.load()
        get_snapshot_or_raise(document, snapshot_id)
        return [
            ConsumablePricingDTO.model_validate(e)
            for e in document["consumables"].get(snapshot_id, [])
        ]

    def upsert_consumables(
        self,
        snapshot_id: str,
        entries: Iterable[Union[ConsumablePricingDTO, Dict[str, Any]]],
    ) -> None:
        rows = [ConsumablePricingDTO.coerce(e).model_dump(mode="json") for e in entries]
        self._replace("consumables", snapshot_id, rows)

    def _replace(self, collection: str, snapshot_id: str, rows: List[Dict[str, Any]]) -> None:
        def _write(document: Dict[str, Any]) -> None:
            get_snapshot_or_raise(document, snapshot_id)
            document[collection][snapshot_id] = rows

        self.store.mutate(_write)
        logger.info("Replaced %s of snapshot %s (%d rows)", collection, snapshot_id, len(rows))
