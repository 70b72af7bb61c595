import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator


class LogEntry(BaseModel):
    id: int
    actor_id: str
    action: str
    table_id: Optional[int] = None
    detail: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("detail", mode="before")
    @classmethod
    def decode_detail(cls, value):
        if value is None or isinstance(value, dict):
            return value
        try:
            parsed = json.loads(value)
        except ValueError:
            return {"raw": value}
        return parsed if isinstance(parsed, dict) else {"raw": parsed}


class LogListResponse(BaseModel):
    logs: List[LogEntry]
    total: int
    limit: int
    offset: int
