from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, CheckConstraint, Index
from sqlalchemy.sql import func
from app.database import Base


class Table(Base):
    __tablename__ = "tables"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_table_balance_floor"),
        Index("ix_tables_leaderboard", "active", "balance", "last_balance_change_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    number = Column(Integer, unique=True, nullable=False)  # 停用的桌号也占用
    display_name = Column(String(50), nullable=False)
    qr_token = Column(String, unique=True, index=True, nullable=False)
    balance = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    last_balance_change_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
