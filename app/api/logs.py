from datetime import datetime, time

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require_admin
from app.config import settings
from app.security import Actor
from models.logs import OperationLog
from schemas.logs import LogEntry, LogListResponse

router = APIRouter()


@router.get("", response_model=LogListResponse)
async def admin_list_logs(
    actor_id: str | None = None,
    action: str | None = None,
    table_id: int | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    limit: int = 50,
    offset: int = 0,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    limit = max(1, min(limit, settings.QUERY_MAX_LIMIT))
    offset = max(0, offset)

    filters = []
    if actor_id:
        filters.append(OperationLog.actor_id == actor_id)
    if action:
        filters.append(OperationLog.action == action)
    if table_id is not None:
        filters.append(OperationLog.table_id == table_id)
    # 无法解析的时间参数直接忽略
    start_dt = _parse_date_param(start_time, start=True)
    if start_dt:
        filters.append(OperationLog.created_at >= start_dt)
    end_dt = _parse_date_param(end_time, start=False)
    if end_dt:
        filters.append(OperationLog.created_at <= end_dt)

    total = (await db.execute(select(func.count(OperationLog.id)).where(*filters))).scalar() or 0
    rows = await db.execute(
        select(OperationLog)
        .where(*filters)
        .order_by(OperationLog.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return LogListResponse(
        logs=[LogEntry.model_validate(log) for log in rows.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


def _parse_date_param(value: str | None, *, start: bool) -> datetime | None:
    if not value:
        return None
    try:
        if len(value) <= 10:
            day = datetime.strptime(value, "%Y-%m-%d").date()
            return datetime.combine(day, time.min if start else time.max)
        return datetime.fromisoformat(value)
    except ValueError:
        return None
