from typing import Any, Dict, List, Optional, Union

from hospital_costing.db.enums import SnapshotStatus
from hospital_costing.errors import ConflictError, InvalidTransitionError
from hospital_costing.logger import get_logger
from hospital_costing.schemas.dto.snapshot_dto import (
    SnapshotCreatePayload,
    SnapshotDetailDTO,
    SnapshotSummaryDTO,
    SnapshotUpdatePayload,
)
from hospital_costing.services.document_store import DocumentStore, get_snapshot_or_raise

logger = get_logger(__name__)

# 状态机：current -> 允许的目标状态
SNAPSHOT_TRANSITIONS = {
    SnapshotStatus.DRAFT: {SnapshotStatus.READY, SnapshotStatus.LOCKED},
    SnapshotStatus.READY: {SnapshotStatus.DRAFT, SnapshotStatus.LOCKED},
    SnapshotStatus.LOCKED: {SnapshotStatus.DRAFT},
}

# READY is only ever reached through a completed recalculation
SYSTEM_ONLY_TARGETS = {SnapshotStatus.READY}


def transition_status(
    snapshot: Dict[str, Any],
    target: SnapshotStatus,
    *,
    timestamp: str,
    by_system: bool = False,
    operator_id: Optional[str] = None,
) -> bool:
    '''
    Move a stored snapshot to target through the transition table.

    Entering LOCKED stamps locked_at / locked_by, leaving it clears both, so
    locked_at is non-null exactly when status is LOCKED.

    :param snapshot: live snapshot record inside the document
    :type snapshot: dict
    :param target: requested status
    :type target: SnapshotStatus
    :param timestamp: ISO timestamp used for locked_at / updated_at
    :type timestamp: str
    :param by_system: True only for the recalculation job runner
    :type by_system: bool
    :param operator_id: recorded as locked_by when locking
    :type operator_id: Optional[str]
    :return: whether the status changed
    :rtype: bool
    '''
    current = SnapshotStatus(snapshot["status"])
    if target == current:
        return False
    if target not in SNAPSHOT_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Snapshot({snapshot['id']}) cannot move from {current.value} to {target.value}"
        )
    if target in SYSTEM_ONLY_TARGETS and not by_system:
        raise InvalidTransitionError(
            f"Snapshot status {target.value} is set by recalculation only"
        )

    snapshot["status"] = target.value
    if target == SnapshotStatus.LOCKED:
        snapshot["locked_at"] = timestamp
        snapshot["locked_by"] = operator_id
    else:
        snapshot["locked_at"] = None
        snapshot["locked_by"] = None
    snapshot["updated_at"] = timestamp
    return True


class SnapshotService:
    """
    Lifecycle of month-scoped costing snapshots.

    Responsibilities:
    - list / get / create (blank or copied from a source snapshot)
    - status changes through the transition table (lock / unlock / update)

    LOCKED is NOT enforced against staff / consumable / procedure edits here;
    editors consult the status and disable mutation themselves.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def list_snapshots(self) -> List[SnapshotSummaryDTO]:
        '''All snapshots, newest month first'''
        document = self.store.load()
        summaries = [SnapshotSummaryDTO.from_stored(s) for s in document["snapshots"].values()]
        return sorted(summaries, key=lambda s: s.month, reverse=True)

    def get_snapshot(self, snapshot_id: str) -> SnapshotDetailDTO:
        document = self.store.load()
        return SnapshotDetailDTO.from_stored(get_snapshot_or_raise(document, snapshot_id))

    def create_snapshot(
        self,
        payload: Union[SnapshotCreatePayload, Dict[str, Any]],
    ) -> SnapshotDetailDTO:
        '''
        Create a DRAFT snapshot for a month.

        If source_snapshot_id names an existing snapshot, its staff,
        consumables, procedures and fixed-cost selection are deep-copied;
        otherwise those collections start empty.

        :param payload: month, include_fixed_costs, source_snapshot_id
        :type payload: SnapshotCreatePayload | dict
        :return: the new snapshot
        :rtype: SnapshotDetailDTO
        '''
        payload = SnapshotCreatePayload.coerce(payload)

        def _create(document: Dict[str, Any]) -> SnapshotDetailDTO:
            # 1️⃣ 月份唯一
            if any(s["month"] == payload.month for s in document["snapshots"].values()):
                raise ConflictError(f"Snapshot for month {payload.month} already exists")

            # 2️⃣ 初始化 snapshot（始终 DRAFT）
            snapshot_id = self.store.generate_id()
            timestamp = self.store.now()
            snapshot = {
                "id": snapshot_id,
                "month": payload.month,
                "status": SnapshotStatus.DRAFT.value,
                "include_fixed_costs": payload.include_fixed_costs,
                "applied_fixed_cost_ids": [],
                "locked_at": None,
                "locked_by": None,
                "last_calculated_at": None,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
            document["snapshots"][snapshot_id] = snapshot
            document["staff"][snapshot_id] = []
            document["consumables"][snapshot_id] = []
            document["procedures"][snapshot_id] = []
            document["fixed_cost_selections"][snapshot_id] = {
                "include_fixed_costs": payload.include_fixed_costs,
                "items": [],
            }

            # 3️⃣ 从来源 snapshot 深拷贝
            source_id = payload.source_snapshot_id
            if source_id and source_id in document["snapshots"]:
                clone = self.store.clone
                document["staff"][snapshot_id] = clone(document["staff"].get(source_id, []))
                document["consumables"][snapshot_id] = clone(document["consumables"].get(source_id, []))
                document["procedures"][snapshot_id] = clone(document["procedures"].get(source_id, []))
                source_selection = document["fixed_cost_selections"].get(source_id)
                if source_selection:
                    items = clone(source_selection.get("items", []))
                    document["fixed_cost_selections"][snapshot_id] = {
                        "include_fixed_costs": payload.include_fixed_costs,
                        "items": items,
                    }
                    snapshot["applied_fixed_cost_ids"] = [
                        item["template_id"] for item in items if item.get("included")
                    ]
            elif source_id:
                logger.warning(
                    "Source snapshot %s not found, snapshot for %s starts empty",
                    source_id,
                    payload.month,
                )

            return SnapshotDetailDTO.from_stored(snapshot)

        detail = self.store.mutate(_create)
        logger.info("Created snapshot %s for month %s", detail.id, detail.month)
        return detail

    def update_snapshot(
        self,
        snapshot_id: str,
        payload: Union[SnapshotUpdatePayload, Dict[str, Any]],
    ) -> SnapshotDetailDTO:
        '''
        Update status and/or include_fixed_costs.
        A status change goes through the transition table; requesting READY
        explicitly raises InvalidTransitionError.
        '''
        payload = SnapshotUpdatePayload.coerce(payload)

        def _update(document: Dict[str, Any]) -> SnapshotDetailDTO:
            snapshot = get_snapshot_or_raise(document, snapshot_id)
            timestamp = self.store.now()
            if payload.status is not None:
                transition_status(snapshot, payload.status, timestamp=timestamp)
            if payload.include_fixed_costs is not None:
                snapshot["include_fixed_costs"] = payload.include_fixed_costs
            snapshot["updated_at"] = timestamp
            return SnapshotDetailDTO.from_stored(snapshot)

        return self.store.mutate(_update)

    def lock_snapshot(self, snapshot_id: str, operator_id: Optional[str] = None) -> SnapshotDetailDTO:
        '''Lock a snapshot; locking an already locked snapshot re-stamps locked_at / locked_by'''

        def _lock(document: Dict[str, Any]) -> SnapshotDetailDTO:
            snapshot = get_snapshot_or_raise(document, snapshot_id)
            timestamp = self.store.now()
            changed = transition_status(
                snapshot,
                SnapshotStatus.LOCKED,
                timestamp=timestamp,
                operator_id=operator_id,
            )
            if not changed:
                snapshot["locked_at"] = timestamp
                snapshot["locked_by"] = operator_id
                snapshot["updated_at"] = timestamp
            return SnapshotDetailDTO.from_stored(snapshot)

        detail = self.store.mutate(_lock)
        logger.info("Locked snapshot %s (%s)", snapshot_id, detail.month)
        return detail

    def unlock_snapshot(self, snapshot_id: str) -> SnapshotDetailDTO:
        def _unlock(document: Dict[str, Any]) -> SnapshotDetailDTO:
            snapshot = get_snapshot_or_raise(document, snapshot_id)
            transition_status(snapshot, SnapshotStatus.DRAFT, timestamp=self.store.now())
            return SnapshotDetailDTO.from_stored(snapshot)

        detail = self.store.mutate(_unlock)
        logger.info("Unlocked snapshot %s (%s)", snapshot_id, detail.month)
        return detail
