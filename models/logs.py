from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from app.database import Base


class OperationLog(Base):
    """Administrative changes to tables. Point movements live in the ledger."""

    __tablename__ = "operation_logs"
    __table_args__ = (
        Index("ix_operation_logs_table_created", "table_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String, index=True, nullable=False)
    action = Column(String(32), index=True, nullable=False)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True)
    detail = Column(Text, nullable=True)  # JSON 对象
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, index=True)
