"""
Point-award protocol: resolve the table, check bounds, then apply the signed
delta and its ledger entry as one atomic unit.
"""
import logging
from dataclasses import dataclass

from app.config import Limits, settings
from app.errors import InvalidStateError, ValidationError
from app.services.ledger import TransactionLedger, parse_kind
from app.services.table_registry import TableRegistry
from models.ledger import EntryKind, LedgerEntry
from models.table import Table

logger = logging.getLogger("tavoli.points")

RESET_MAX_ATTEMPTS = 10


@dataclass
class AwardResult:
    table: Table
    entry: LedgerEntry | None


def signed_delta(kind: EntryKind, points: int) -> int:
    # ADJUSTMENT 的方向由 points 的正负决定
    if kind == EntryKind.EARNED:
        return points
    if kind == EntryKind.REDEEMED:
        return -points
    return points


class PointsService:
    def __init__(self, registry: TableRegistry, ledger: TransactionLedger, limits: Limits | None = None):
        self.registry = registry
        self.ledger = ledger
        self.limits = limits or settings.limits()

    def check_points(self, kind: EntryKind, points) -> int:
        if isinstance(points, bool) or not isinstance(points, int):
            raise ValidationError("积分必须是整数", points=points)
        if kind == EntryKind.ADJUSTMENT:
            if points == 0:
                raise ValidationError("调整积分不能为0")
        elif points <= 0:
            raise ValidationError("积分必须是正整数", points=points)
        low, high = self.limits.points.min, self.limits.points.max
        if not low <= abs(points) <= high:
            raise ValidationError(f"积分必须在{low}到{high}之间", points=points, min=low, max=high)
        return points

    async def resolve(self, *, qr_token: str | None = None, table_id: int | None = None) -> Table:
        if (qr_token is None) == (table_id is None):
            raise ValidationError("必须且只能指定二维码或桌子ID之一")
        if qr_token is not None:
            return await self.registry.resolve_by_token(qr_token)
        return await self.registry.resolve_by_id(table_id)

    async def apply(
        self,
        *,
        actor_id: str,
        points,
        kind=EntryKind.EARNED,
        qr_token: str | None = None,
        table_id: int | None = None,
        note: str | None = None,
    ) -> AwardResult:
        kind = parse_kind(kind)
        table = await self.resolve(qr_token=qr_token, table_id=table_id)
        points = self.check_points(kind, points)
        delta = signed_delta(kind, points)
        table, entry = await self.ledger.record(table.id, actor_id, delta, kind, note)
        return AwardResult(table=table, entry=entry)

    async def reset(self, table_id: int, *, actor_id: str, reason: str | None = None) -> AwardResult:
        """Zero a table's balance with an ADJUSTMENT entry; bounds do not apply."""
        note = f"积分清零: {reason or '未说明原因'}"[: self.limits.note.max_length]
        last_entry = None
        for _ in range(RESET_MAX_ATTEMPTS):
            table = await self.registry.resolve_by_id(table_id)
            if table.balance == 0:
                return AwardResult(table=table, entry=last_entry)
            # 读到的余额可能已过期，条件更新会拒绝扣成负数，重读后再试
            try:
                table, last_entry = await self.ledger.record(
                    table_id, actor_id, -table.balance, EntryKind.ADJUSTMENT, note
                )
            except InvalidStateError:
                continue
            if table.balance == 0:
                logger.info("table reset id=%s cleared=%s actor=%s", table_id, -last_entry.delta, actor_id)
                return AwardResult(table=table, entry=last_entry)
        logger.warning("table reset gave up id=%s actor=%s", table_id, actor_id)
        raise InvalidStateError("积分清零失败，请重试", table_id=table_id)
