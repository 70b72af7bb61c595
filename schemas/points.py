from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import date, datetime

from schemas.table import TableResponse


class PointsRequest(BaseModel):
    points: int
    kind: str = "EARNED"
    qr_token: Optional[str] = None
    table_id: Optional[int] = None
    note: Optional[str] = None

class QrPointsRequest(BaseModel):
    qr_token: str
    points: int
    note: Optional[str] = None

class TablePointsRequest(BaseModel):
    points: int
    note: Optional[str] = None

class ResetRequest(BaseModel):
    reason: Optional[str] = None

class LedgerEntryResponse(BaseModel):
    id: int
    table_id: int
    actor_id: str
    delta: int
    kind: str
    note: Optional[str] = None
    balance_before: int
    balance_after: int
    created_at: datetime

    class Config:
        from_attributes = True

class PointsResponse(BaseModel):
    table: TableResponse
    entry: Optional[LedgerEntryResponse] = None

class LedgerListResponse(BaseModel):
    entries: List[LedgerEntryResponse]
    total: int
    limit: int
    offset: int

class KindTotals(BaseModel):
    total_points: int
    count: int

class DailyStatsResponse(BaseModel):
    day: date
    by_kind: Dict[str, KindTotals]
    total_transactions: int
    net_points: int

class UserStatsResponse(BaseModel):
    user_id: str
    by_kind: Dict[str, KindTotals]
    recent_activity: List[LedgerEntryResponse]
