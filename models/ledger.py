import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from app.database import Base


class EntryKind(str, enum.Enum):
    EARNED = "EARNED"
    REDEEMED = "REDEEMED"
    ADJUSTMENT = "ADJUSTMENT"


class LedgerEntry(Base):
    """Append-only; rows are never updated or deleted."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_table_created", "table_id", "created_at"),
        Index("ix_ledger_actor_created", "actor_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False)
    actor_id = Column(String, nullable=False)
    delta = Column(Integer, nullable=False)
    kind = Column(String, index=True, nullable=False)
    note = Column(String(200), nullable=True)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, index=True)
