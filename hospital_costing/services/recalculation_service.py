from typing import Any, Dict, List, Optional, Tuple

from hospital_costing.db.enums import JobStatus, SnapshotStatus
from hospital_costing.errors import NotFoundError
from hospital_costing.logger import get_logger
from hospital_costing.schemas.dto.procedure_dto import ProcedureSummaryDTO
from hospital_costing.schemas.dto.registry_dto import ConsumablePricingDTO, StaffCapacityDTO
from hospital_costing.schemas.dto.result_dto import CostingResultRowDTO, RecalculationJobDTO
from hospital_costing.services.calculation_engine import calculate_results, month_over_month
from hospital_costing.services.document_store import DocumentStore, get_snapshot_or_raise
from hospital_costing.services.snapshot_service import transition_status

logger = get_logger(__name__)


def find_previous_calculated_snapshot(
    document: Dict[str, Any],
    month: str,
) -> Optional[Dict[str, Any]]:
    '''
    Latest snapshot with an earlier month that already has stored results.
    YYYY-MM strings compare correctly as text.
    '''
    candidates = [
        s for s in document["snapshots"].values()
        if s["month"] < month and s["id"] in document["results"]
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s["month"])


def stored_rows(document: Dict[str, Any], snapshot_id: str) -> List[CostingResultRowDTO]:
    stored = document["results"].get(snapshot_id)
    if not stored:
        return []
    return [CostingResultRowDTO.model_validate(row) for row in stored["rows"]]


class RecalculationService:
    """
    Runs a calculation pass for a snapshot and persists its outcome.

    Execution is synchronous (queued_at == completed_at) but every run leaves
    a job record, so the API shape already fits asynchronous execution.

    All side effects happen inside ONE document mutation:
    - result rows and insights replaced
    - snapshot.last_calculated_at set
    - DRAFT -> READY (the only place READY is ever set)
    - job record appended
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def recalculate(self, snapshot_id: str) -> RecalculationJobDTO:
        '''
        :raises NotFoundError: the snapshot does not exist
        '''

        def _run(document: Dict[str, Any]) -> Tuple[RecalculationJobDTO, int, int]:
            snapshot = get_snapshot_or_raise(document, snapshot_id)
            queued_at = self.store.now()

            # 1️⃣ 读取输入
            staff = [StaffCapacityDTO.model_validate(e) for e in document["staff"].get(snapshot_id, [])]
            consumables = [
                ConsumablePricingDTO.model_validate(e)
                for e in document["consumables"].get(snapshot_id, [])
            ]
            procedures = [
                ProcedureSummaryDTO.model_validate(d)
                for d in document["procedures"].get(snapshot_id, [])
            ]

            # 2️⃣ 计算
            outcome = calculate_results(staff, consumables, procedures)

            # 3️⃣ 环比
            previous = find_previous_calculated_snapshot(document, snapshot["month"])
            if previous is None:
                outcome.insights.mom = month_over_month(outcome.rows, None)
            else:
                outcome.insights.mom = month_over_month(
                    outcome.rows,
                    stored_rows(document, previous["id"]),
                    previous_snapshot_id=previous["id"],
                    previous_month=previous["month"],
                )

            # 4️⃣ 写入结果（整体替换）
            completed_at = queued_at
            document["results"][snapshot_id] = {
                "rows": [row.model_dump(mode="json") for row in outcome.rows],
                "insights": outcome.insights.model_dump(mode="json"),
                "last_calculated_at": completed_at,
            }

            # 5️⃣ 更新 snapshot
            snapshot["last_calculated_at"] = completed_at
            if snapshot["status"] == SnapshotStatus.DRAFT.value:
                transition_status(
                    snapshot,
                    SnapshotStatus.READY,
                    timestamp=completed_at,
                    by_system=True,
                )
            snapshot["updated_at"] = completed_at

            # 6️⃣ 记录 job
            job = RecalculationJobDTO(
                job_id=self.store.generate_id(),
                snapshot_id=snapshot_id,
                status=JobStatus.COMPLETED,
                queued_at=queued_at,
                completed_at=completed_at,
            )
            document["jobs"][job.job_id] = job.model_dump(mode="json")

            unresolved = sum(1 for row in outcome.rows if row.unresolved_references)
            return job, len(outcome.rows), unresolved

        job, row_count, unresolved = self.store.mutate(_run)
        if unresolved:
            logger.warning(
                "Snapshot %s: %d row(s) have unresolved staff/consumable references",
                snapshot_id,
                unresolved,
            )
        logger.info("Recalculated snapshot %s: %d row(s), job %s", snapshot_id, row_count, job.job_id)
        return job

    def get_job(self, job_id: str) -> RecalculationJobDTO:
        document = self.store.load()
        job = document["jobs"].get(job_id)
        if job is None:
            raise NotFoundError(f"Job({job_id}) not found")
        return RecalculationJobDTO.model_validate(job)

    def list_jobs(self, snapshot_id: str) -> List[RecalculationJobDTO]:
        '''Jobs of a snapshot, oldest first'''
        document = self.store.load()
        get_snapshot_or_raise(document, snapshot_id)
        jobs = [
            RecalculationJobDTO.model_validate(job)
            for job in document["jobs"].values()
            if job["snapshot_id"] == snapshot_id
        ]
        return sorted(jobs, key=lambda j: j.queued_at)
