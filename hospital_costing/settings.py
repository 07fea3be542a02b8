# hospital_costing/settings.py
"""
Runtime configuration, read from the environment (and an optional .env file).

Values are resolved on every call so tests and entry points can override
them with os.environ before the engine is created.
"""
import os
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///./hospital_costing.db"
DEFAULT_DOCUMENT_ID = "costing-primary"


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return False


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_document_id() -> str:
    return os.getenv("COSTING_DOCUMENT_ID", DEFAULT_DOCUMENT_ID)


def is_strict_persistence() -> bool:
    '''
    Strict mode makes the document store fail loudly on a corrupted document
    instead of resetting it. Server deployments should turn it on.
    '''
    return _parse_bool(os.getenv("COSTING_STRICT_PERSISTENCE", "false"))


def get_log_dir() -> str:
    return os.getenv("LOG_DIR", "logs")


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()
