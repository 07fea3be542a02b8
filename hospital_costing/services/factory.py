from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from hospital_costing.services.document_store import DocumentStore
from hospital_costing.services.fixed_cost_service import FixedCostService
from hospital_costing.services.procedure_service import ProcedureService
from hospital_costing.services.recalculation_service import RecalculationService
from hospital_costing.services.registry_service import RegistryService
from hospital_costing.services.result_query_service import ResultQueryService
from hospital_costing.services.snapshot_service import SnapshotService


@dataclass
class CostingServices:
    """The service interfaces collaborators call into, sharing one store."""
    store: DocumentStore
    snapshots: SnapshotService
    registry: RegistryService
    fixed_costs: FixedCostService
    procedures: ProcedureService
    recalculation: RecalculationService
    results: ResultQueryService


def create_costing_services(
    db: Session,
    *,
    document_id: Optional[str] = None,
    strict: Optional[bool] = None,
) -> CostingServices:
    '''
    Wire every costing service on top of one DocumentStore.

    :param db: SQLAlchemy session, owned by the caller (close it when done)
    :type db: Session
    :param document_id: overrides COSTING_DOCUMENT_ID
    :type document_id: Optional[str]
    :param strict: overrides COSTING_STRICT_PERSISTENCE
    :type strict: Optional[bool]
    '''
    store = DocumentStore(db, document_id=document_id, strict=strict)
    return CostingServices(
        store=store,
        snapshots=SnapshotService(store),
        registry=RegistryService(store),
        fixed_costs=FixedCostService(store),
        procedures=ProcedureService(store),
        recalculation=RecalculationService(store),
        results=ResultQueryService(store),
    )
