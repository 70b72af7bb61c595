from fastapi import APIRouter, Depends

from app.api.deps import current_actor, get_ledger, get_registry, require_admin, require_cashier
from app.security import Actor
from app.services.ledger import TransactionLedger
from app.services.table_registry import TableRegistry, clamp_limit
from app.ws import broadcast_table_update
from schemas.points import LedgerEntryResponse
from schemas.table import (
    LeaderboardResponse,
    RankedTableResponse,
    ReconcileResponse,
    TableCreate,
    TableListResponse,
    TableRename,
    TableResponse,
    medal_for,
)

router = APIRouter()


def _ranked(table, position: int) -> RankedTableResponse:
    data = TableResponse.model_validate(table).model_dump()
    return RankedTableResponse(**data, position=position, medal=medal_for(position))


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(limit: int | None = None, registry: TableRegistry = Depends(get_registry)):
    tables = await registry.leaderboard(limit)
    ranked = [_ranked(table, index + 1) for index, table in enumerate(tables)]
    return LeaderboardResponse(count=len(ranked), tables=ranked)


@router.get("/qr/{qr_token}", response_model=RankedTableResponse)
async def get_table_by_qr(qr_token: str, registry: TableRegistry = Depends(get_registry)):
    table = await registry.resolve_by_token(qr_token)
    position = await registry.leaderboard_position(table)
    return _ranked(table, position)


@router.get("", response_model=TableListResponse)
async def list_tables(
    active: bool = True,
    limit: int = 10,
    offset: int = 0,
    actor: Actor = Depends(require_cashier),
    registry: TableRegistry = Depends(get_registry),
):
    limit = clamp_limit(limit, 10)
    offset = max(0, offset)
    tables, total = await registry.list_tables(active=active, limit=limit, offset=offset)
    return TableListResponse(
        tables=[TableResponse.model_validate(t) for t in tables],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=TableResponse, status_code=201)
async def create_table(
    payload: TableCreate,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_registry),
):
    table = await registry.create_table(payload.number, payload.name, actor_id=actor.user_id)
    await broadcast_table_update(table, "create")
    return TableResponse.model_validate(table)


@router.get("/{table_id}", response_model=TableResponse)
async def get_table(
    table_id: int,
    actor: Actor = Depends(current_actor),
    registry: TableRegistry = Depends(get_registry),
):
    table = await registry.resolve_by_id(table_id, include_inactive=actor.is_admin)
    return TableResponse.model_validate(table)


@router.get("/{table_id}/history", response_model=list[LedgerEntryResponse])
async def get_table_history(
    table_id: int,
    limit: int | None = None,
    actor: Actor = Depends(require_cashier),
    ledger: TransactionLedger = Depends(get_ledger),
):
    # 管理员可以查看已停用桌子的历史
    entries = await ledger.history_for_table(table_id, limit, include_inactive=actor.is_admin)
    return [LedgerEntryResponse.model_validate(e) for e in entries]


@router.get("/{table_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_table(
    table_id: int,
    actor: Actor = Depends(require_admin),
    ledger: TransactionLedger = Depends(get_ledger),
):
    table = await ledger.registry.resolve_by_id(table_id, include_inactive=True)
    replayed = await ledger.replay_balance(table_id)
    return ReconcileResponse(
        table_id=table_id,
        stored_balance=table.balance,
        replayed_balance=replayed,
        consistent=table.balance == replayed,
    )


@router.put("/{table_id}/name", response_model=TableResponse)
async def rename_table(
    table_id: int,
    payload: TableRename,
    actor: Actor = Depends(current_actor),
    registry: TableRegistry = Depends(get_registry),
):
    table = await registry.rename(table_id, payload.name, actor_id=actor.user_id)
    await broadcast_table_update(table, "rename")
    return TableResponse.model_validate(table)


@router.delete("/{table_id}")
async def deactivate_table(
    table_id: int,
    actor: Actor = Depends(require_admin),
    registry: TableRegistry = Depends(get_registry),
):
    table = await registry.deactivate(table_id, actor_id=actor.user_id)
    await broadcast_table_update(table, "deactivate")
    return {"success": True, "message": "桌子已停用"}
