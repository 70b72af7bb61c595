from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.api.deps import current_actor, get_ledger, get_points, require_admin, require_cashier
from app.security import Actor, require_role, ROLE_ADMIN
from app.services.ledger import TransactionLedger, local_timezone, parse_kind
from app.services.points import AwardResult, PointsService
from app.services.table_registry import clamp_limit
from app.ws import broadcast_table_update
from models.ledger import EntryKind
from schemas.points import (
    DailyStatsResponse,
    KindTotals,
    LedgerEntryResponse,
    LedgerListResponse,
    PointsRequest,
    PointsResponse,
    QrPointsRequest,
    ResetRequest,
    TablePointsRequest,
    UserStatsResponse,
)
from schemas.table import TableResponse

router = APIRouter()


async def _respond(result: AwardResult, op: str) -> PointsResponse:
    await broadcast_table_update(result.table, op)
    return PointsResponse(
        table=TableResponse.model_validate(result.table),
        entry=LedgerEntryResponse.model_validate(result.entry) if result.entry else None,
    )


@router.post("", response_model=PointsResponse)
async def apply_points(
    payload: PointsRequest,
    request: Request,
    actor: Actor = Depends(require_cashier),
    points: PointsService = Depends(get_points),
):
    kind = parse_kind(payload.kind)
    if kind == EntryKind.ADJUSTMENT:
        require_role(request, actor, ROLE_ADMIN)
    result = await points.apply(
        actor_id=actor.user_id,
        points=payload.points,
        kind=kind,
        qr_token=payload.qr_token,
        table_id=payload.table_id,
        note=payload.note,
    )
    return await _respond(result, kind.value.lower())


@router.post("/add", response_model=PointsResponse)
async def add_points(
    payload: QrPointsRequest,
    actor: Actor = Depends(require_cashier),
    points: PointsService = Depends(get_points),
):
    result = await points.apply(
        actor_id=actor.user_id,
        points=payload.points,
        kind=EntryKind.EARNED,
        qr_token=payload.qr_token,
        note=payload.note,
    )
    return await _respond(result, "earned")


@router.post("/redeem", response_model=PointsResponse)
async def redeem_points(
    payload: QrPointsRequest,
    actor: Actor = Depends(require_cashier),
    points: PointsService = Depends(get_points),
):
    result = await points.apply(
        actor_id=actor.user_id,
        points=payload.points,
        kind=EntryKind.REDEEMED,
        qr_token=payload.qr_token,
        note=payload.note,
    )
    return await _respond(result, "redeemed")


@router.post("/table/{table_id}", response_model=PointsResponse)
async def add_points_to_table(
    table_id: int,
    payload: TablePointsRequest,
    actor: Actor = Depends(require_cashier),
    points: PointsService = Depends(get_points),
):
    result = await points.apply(
        actor_id=actor.user_id,
        points=payload.points,
        kind=EntryKind.EARNED,
        table_id=table_id,
        note=payload.note,
    )
    return await _respond(result, "earned")


@router.post("/reset/{table_id}", response_model=PointsResponse)
async def reset_table_points(
    table_id: int,
    payload: ResetRequest | None = None,
    actor: Actor = Depends(require_admin),
    points: PointsService = Depends(get_points),
):
    result = await points.reset(table_id, actor_id=actor.user_id, reason=payload.reason if payload else None)
    return await _respond(result, "reset")


@router.get("/transactions", response_model=LedgerListResponse)
async def list_transactions(
    kind: str | None = None,
    table_id: int | None = None,
    user_id: str | None = None,
    limit: int = 20,
    offset: int = 0,
    actor: Actor = Depends(require_cashier),
    ledger: TransactionLedger = Depends(get_ledger),
):
    limit = clamp_limit(limit, 20)
    offset = max(0, offset)
    entries, total = await ledger.list_entries(
        kind=kind, table_id=table_id, actor_id=user_id, limit=limit, offset=offset
    )
    return LedgerListResponse(
        entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats/daily", response_model=DailyStatsResponse)
async def daily_stats(
    day: date | None = Query(None, alias="date"),
    actor: Actor = Depends(require_cashier),
    ledger: TransactionLedger = Depends(get_ledger),
):
    day = day or datetime.now(local_timezone()).date()
    totals = await ledger.daily_aggregate(day)
    return DailyStatsResponse(
        day=day,
        by_kind={kind: KindTotals(**values) for kind, values in totals.items()},
        total_transactions=sum(values["count"] for values in totals.values()),
        net_points=sum(values["total_points"] for values in totals.values()),
    )


@router.get("/stats/user", response_model=UserStatsResponse)
@router.get("/stats/user/{user_id}", response_model=UserStatsResponse)
async def user_stats(
    user_id: str | None = None,
    limit: int = 10,
    actor: Actor = Depends(current_actor),
    ledger: TransactionLedger = Depends(get_ledger),
):
    target = user_id or actor.user_id
    # 只有管理员可以查看其他人的统计
    if target != actor.user_id and not actor.is_admin:
        raise HTTPException(status_code=403, detail="无权查看该用户统计")
    totals = await ledger.actor_totals(target)
    recent = await ledger.activity_for_actor(target, limit)
    return UserStatsResponse(
        user_id=target,
        by_kind={kind: KindTotals(**values) for kind, values in totals.items()},
        recent_activity=[LedgerEntryResponse.model_validate(e) for e in recent],
    )
