import logging

import pytest
from sqlalchemy import update

from hospital_costing.errors import PersistenceCorruptedError, StaleDocumentError
from hospital_costing.models.costing_document import CostingDocument
from hospital_costing.services.document_store import DEFAULT_DOCUMENT, DocumentStore


def test_load_empty_store_returns_default_document(db):
    store = DocumentStore(db, document_id="doc", strict=False)
    assert store.load() == DEFAULT_DOCUMENT


def test_mutate_persists_whole_document_and_returns_result(db):
    store = DocumentStore(db, document_id="doc", strict=False)

    def _add(document):
        document["snapshots"]["s1"] = {"id": "s1", "month": "2025-01"}
        return "done"

    assert store.mutate(_add) == "done"
    assert store.load()["snapshots"]["s1"]["month"] == "2025-01"
    assert db.get(CostingDocument, "doc").revision == 1

    store.mutate(lambda document: document["jobs"].update({"j1": {}}))
    assert db.get(CostingDocument, "doc", populate_existing=True).revision == 2


def test_load_returns_a_copy(db):
    store = DocumentStore(db, document_id="doc", strict=False)
    store.mutate(lambda document: document["staff"].update({"s1": []}))

    loaded = store.load()
    loaded["staff"]["s1"].append({"role_name": "Nurse"})

    assert store.load()["staff"]["s1"] == []


def test_failed_mutator_persists_nothing(db):
    store = DocumentStore(db, document_id="doc", strict=False)
    store.mutate(lambda document: document["snapshots"].update({"s1": {"id": "s1"}}))

    def _boom(document):
        document["snapshots"]["s2"] = {"id": "s2"}
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.mutate(_boom)

    assert list(store.load()["snapshots"]) == ["s1"]


def test_missing_keys_are_filled_from_defaults(db):
    db.add(CostingDocument(id="doc", state='{"snapshots": {"s1": {"id": "s1"}}, "metadata": {}}', revision=1))
    db.commit()

    document = DocumentStore(db, document_id="doc", strict=False).load()

    assert document["snapshots"] == {"s1": {"id": "s1"}}
    assert document["jobs"] == {}
    assert document["metadata"]["version"] == 1


def test_corrupted_document_resets_to_defaults(db, caplog):
    db.add(CostingDocument(id="doc", state="{not json", revision=1))
    db.commit()
    store = DocumentStore(db, document_id="doc", strict=False)

    with caplog.at_level(logging.WARNING):
        document = store.load()

    assert document == DEFAULT_DOCUMENT
    assert "resetting to defaults" in caplog.text

    # the next mutation overwrites the corrupted state
    store.mutate(lambda d: d["snapshots"].update({"s1": {"id": "s1"}}))
    assert "s1" in store.load()["snapshots"]


def test_corrupted_document_raises_in_strict_mode(db):
    db.add(CostingDocument(id="doc", state="[1, 2, 3]", revision=1))
    db.commit()

    with pytest.raises(PersistenceCorruptedError):
        DocumentStore(db, document_id="doc", strict=True).load()


def test_collection_of_wrong_type_resets_to_defaults(db):
    db.add(CostingDocument(id="doc", state='{"snapshots": null, "staff": {}}', revision=1))
    db.commit()

    document = DocumentStore(db, document_id="doc", strict=False).load()

    assert document == DEFAULT_DOCUMENT


def test_collection_of_wrong_type_raises_in_strict_mode(db):
    db.add(CostingDocument(id="doc", state='{"jobs": []}', revision=1))
    db.commit()

    with pytest.raises(PersistenceCorruptedError):
        DocumentStore(db, document_id="doc", strict=True).load()


def test_concurrent_write_is_rejected(db):
    store = DocumentStore(db, document_id="doc", strict=False)
    store.mutate(lambda d: d["snapshots"].update({"s1": {"id": "s1"}}))

    def _lose_race(document):
        # another writer bumps the revision between our load and our write
        db.execute(
            update(CostingDocument)
            .where(CostingDocument.id == "doc")
            .values(revision=CostingDocument.revision + 1)
        )
        document["snapshots"]["s2"] = {"id": "s2"}

    with pytest.raises(StaleDocumentError):
        store.mutate(_lose_race)

    assert list(store.load()["snapshots"]) == ["s1"]


def test_generated_ids_are_unique():
    ids = {DocumentStore.generate_id() for _ in range(1000)}
    assert len(ids) == 1000
