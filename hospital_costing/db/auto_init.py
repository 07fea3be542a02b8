"""
数据库自动初始化检查模块
Run at start-up (or `python -m hospital_costing.db.auto_init`) to create the
costing tables when they are missing.
"""
from sqlalchemy import inspect

from hospital_costing.db.session import get_engine
from hospital_costing.db.init_db import init_db
from hospital_costing.logger import get_logger
from hospital_costing.models.costing_document import CostingDocument

logger = get_logger(__name__)


def check_tables_exist(engine=None) -> bool:
    """检查数据库表是否存在"""
    engine = engine or get_engine()
    inspector = inspect(engine)
    return CostingDocument.__tablename__ in inspector.get_table_names()


def auto_init(engine=None):
    """
    自动初始化检查
    Creates the tables if the costing document table does not exist yet.
    """
    engine = engine or get_engine()
    logger.info("Checking database initialization state")

    if check_tables_exist(engine):
        logger.info("Costing tables already exist")
        return

    logger.info("Costing tables missing, creating")
    init_db(engine)
    logger.info("Costing tables created")


if __name__ == "__main__":
    auto_init()
