from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

MEDALS = ["🥇", "🥈", "🥉"]


def medal_for(position: int) -> Optional[str]:
    return MEDALS[position - 1] if 1 <= position <= len(MEDALS) else None


class TableCreate(BaseModel):
    number: int
    name: Optional[str] = None

class TableRename(BaseModel):
    name: str

class TableResponse(BaseModel):
    id: int
    number: int
    display_name: str
    qr_token: str
    balance: int
    active: bool
    last_balance_change_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RankedTableResponse(TableResponse):
    position: int
    medal: Optional[str] = None

class LeaderboardResponse(BaseModel):
    count: int
    tables: List[RankedTableResponse]

class TableListResponse(BaseModel):
    tables: List[TableResponse]
    total: int
    limit: int
    offset: int

class ReconcileResponse(BaseModel):
    table_id: int
    stored_balance: int
    replayed_balance: int
    consistent: bool
