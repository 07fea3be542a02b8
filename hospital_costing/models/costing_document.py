# hospital_costing/models/costing_document.py
from sqlalchemy import (
    String,
    Text,
    Integer,
    DateTime,
    func,
)
from hospital_costing.db.base import Base
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime


class CostingDocument(Base):
    """
    Whole-document persistence for the costing subsystem.

    One row holds every snapshot-scoped collection (snapshots, staff,
    consumables, procedures, fixed-cost selections, results, jobs) as a
    serialized JSON document, partitioned internally by snapshot id.

    Invariants:
    - state is always written as a whole, never field by field
    - revision increases by exactly one on every successful write
    """

    __tablename__ = "costing_documents"

    # =========
    # 🔒 Identity
    # =========
    id :Mapped[str] = mapped_column(String(64), primary_key=True, comment="Document id (one per deployment)")

    # =========
    # 📦 Serialized state
    # =========
    # Text 而不是 JSON：读取时自行解析，才能识别损坏的数据
    state :Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON serialized costing document",
    )

    # =========
    # 🔁 Optimistic concurrency
    # =========
    revision :Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Incremented on every write; checked on update",
    )

    # =========
    # ⏱ Timestamps
    # =========
    created_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Creation timestamp"
    )

    updated_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="Last update timestamp",
    )

    def __repr__(self) -> str:
        return f"<CostingDocument id={self.id} revision={self.revision}>"
