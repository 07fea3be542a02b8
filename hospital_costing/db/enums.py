# hospital_costing/db/enums.py
import enum

# Snapshot related enums
class SnapshotStatus(str, enum.Enum):
    DRAFT = "DRAFT"      # 编辑中
    READY = "READY"      # 已完成核算，仅由重算设置
    LOCKED = "LOCKED"    # 已锁定，只读为主


# Recalculation job related enums
class JobStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


# Export related enums
class ExportFormat(str, enum.Enum):
    CSV = "csv"
    XLSX = "xlsx"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"
