import os
import tempfile

# 日志写到临时目录，避免污染工作目录
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "hospital_costing_test_logs"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hospital_costing.db.init_db import init_db
from hospital_costing.services.factory import create_costing_services


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def services(db):
    return create_costing_services(db, document_id="test-document", strict=False)


def seed_nurse_filler(services, snapshot_id, *, sale_price=500_000, total_minutes=30, case_count=None):
    '''Nurse 3,000,000 / 6,000 min, Filler 150,000 / 3 syringes, one variant'''
    services.registry.upsert_staff(
        snapshot_id,
        [{"role_name": "Nurse", "monthly_payroll": 3_000_000, "available_minutes": 6_000}],
    )
    services.registry.upsert_consumables(
        snapshot_id,
        [{"consumable_name": "Filler", "purchase_cost": 150_000, "yield_quantity": 3, "unit": "syringe"}],
    )
    return services.procedures.create_procedure(
        snapshot_id,
        {
            "name": "Filler Injection",
            "variants": [
                {
                    "label": "1cc",
                    "sale_price": sale_price,
                    "total_minutes": total_minutes,
                    "case_count": case_count,
                    "staff_mix": [{"role_name": "Nurse", "participants": 1, "minutes": 30}],
                    "consumables": [{"consumable_name": "Filler", "quantity": 1, "unit": "syringe"}],
                }
            ],
        },
    )


@pytest.fixture
def seed(services):
    def _seed(snapshot_id, **kwargs):
        return seed_nurse_filler(services, snapshot_id, **kwargs)

    return _seed


@pytest.fixture
def snapshot(services):
    return services.snapshots.create_snapshot({"month": "2025-01"})
