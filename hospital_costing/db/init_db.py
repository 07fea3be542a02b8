from hospital_costing.db.session import get_engine
from hospital_costing.db.base import Base
# 注册所有表到 Base.metadata
from hospital_costing.models.costing_document import CostingDocument  # noqa: F401


def init_db(engine=None):
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
