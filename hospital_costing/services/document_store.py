import copy
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar
from uuid import uuid4

from sqlalchemy import update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hospital_costing.errors import NotFoundError, PersistenceCorruptedError, StaleDocumentError
from hospital_costing.logger import get_logger
from hospital_costing.models.costing_document import CostingDocument
from hospital_costing.settings import get_document_id, is_strict_persistence

logger = get_logger(__name__)

R = TypeVar("R")

DOCUMENT_VERSION = 1

DEFAULT_DOCUMENT: Dict[str, Any] = {
    "snapshots": {},
    "staff": {},
    "consumables": {},
    "procedures": {},
    "fixed_cost_selections": {},
    "results": {},
    "jobs": {},
    "metadata": {
        "version": DOCUMENT_VERSION,
    },
}


def default_document() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_DOCUMENT)


def _deep_merge(defaults: Dict[str, Any], value: Dict[str, Any]) -> Dict[str, Any]:
    '''
    Merge a persisted document over the defaults so that documents written
    before a collection existed still load with every key present.
    '''
    merged = copy.deepcopy(defaults)
    for key, item in value.items():
        if isinstance(merged.get(key), dict) and isinstance(item, dict):
            merged[key] = _deep_merge(merged[key], item)
        else:
            merged[key] = copy.deepcopy(item)
    return merged


def get_snapshot_or_raise(document: Dict[str, Any], snapshot_id: str) -> Dict[str, Any]:
    '''Return the live snapshot record inside document, NotFoundError if absent'''
    snapshot = document["snapshots"].get(snapshot_id)
    if snapshot is None:
        raise NotFoundError(f"Snapshot({snapshot_id}) not found")
    return snapshot


class DocumentStore:
    """
    Versioned whole-document store for all snapshot-related collections.

    Contract:
    - load() returns a deep copy of the current document, defaults merged in
    - mutate(fn) applies fn to the live document, persists the WHOLE document
      and returns fn's result; if fn raises, nothing is persisted
    - every write is checked against the revision that was read
      (optimistic concurrency), a lost race raises StaleDocumentError

    The store owns the transaction boundary: mutate commits on success and
    rolls back on any failure.
    """

    def __init__(
        self,
        db: Session,
        *,
        document_id: Optional[str] = None,
        strict: Optional[bool] = None,
    ):
        self.db = db
        self.document_id = document_id or get_document_id()
        self.strict = is_strict_persistence() if strict is None else strict

    # ======================================================
    # 🔧 Helpers shared by the services
    # ======================================================

    @staticmethod
    def generate_id() -> str:
        return str(uuid4())

    @staticmethod
    def now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def clone(value):
        return copy.deepcopy(value)

    # ======================================================
    # 📖 Read / write
    # ======================================================

    def load(self) -> Dict[str, Any]:
        '''
        Return a deep copy of the current document.
        A missing row yields the default empty document.
        '''
        row = self._fetch_row()
        if row is None:
            return default_document()
        return self._parse(row.state)

    def mutate(self, mutator: Callable[[Dict[str, Any]], R]) -> R:
        '''
        Load the live document, apply mutator, persist the whole document.

        :param mutator: receives the mutable document and returns a result
        :type mutator: Callable[[dict], R]
        :return: the mutator's result
        :rtype: R
        '''
        try:
            row = self._fetch_row()
            if row is None:
                document = default_document()
                seen_revision = None
            else:
                document = self._parse(row.state)
                seen_revision = row.revision

            result = mutator(document)

            self._write(document, seen_revision)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result

    def _fetch_row(self) -> Optional[CostingDocument]:
        # populate_existing: 不使用 identity map 中的旧状态
        return self.db.get(CostingDocument, self.document_id, populate_existing=True)

    def _parse(self, raw: str) -> Dict[str, Any]:
        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                raise ValueError("document root is not an object")
            for key, default in DEFAULT_DOCUMENT.items():
                if key in parsed and isinstance(default, dict) and not isinstance(parsed[key], dict):
                    raise ValueError(f"collection {key!r} is not an object")
        except (TypeError, ValueError) as e:
            if self.strict:
                raise PersistenceCorruptedError(
                    f"Costing document {self.document_id} is corrupted: {e}"
                ) from e
            logger.warning(
                "Failed to parse costing document %s, resetting to defaults: %s",
                self.document_id,
                e,
            )
            return default_document()
        return _deep_merge(DEFAULT_DOCUMENT, parsed)

    def _write(self, document: Dict[str, Any], seen_revision: Optional[int]) -> None:
        payload = json.dumps(document, ensure_ascii=False)

        # 1️⃣ 首次写入：插入新行
        if seen_revision is None:
            self.db.add(CostingDocument(id=self.document_id, state=payload, revision=1))
            try:
                self.db.flush()
            except IntegrityError as e:
                raise StaleDocumentError(
                    f"Costing document {self.document_id} was created concurrently"
                ) from e
            return

        # 2️⃣ 更新：只有 revision 未变化时才写入
        result = self.db.execute(
            update(CostingDocument)
            .where(
                CostingDocument.id == self.document_id,
                CostingDocument.revision == seen_revision,
            )
            .values(
                state=payload,
                revision=seen_revision + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleDocumentError(
                f"Costing document {self.document_id} changed since revision {seen_revision}"
            )
