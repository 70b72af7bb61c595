"""
Transaction Ledger: append-only history of balance changes.

``record`` is the only writer. It applies the delta through the registry and
inserts the entry inside one session, so either both land or neither does.
The entry's before/after snapshot comes from the row the UPDATE returned,
never from an earlier read.
"""
import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from app.config import Limits, settings
from app.errors import ValidationError
from app.services.table_registry import TableRegistry, clamp_limit
from models.ledger import EntryKind, LedgerEntry
from models.table import Table

logger = logging.getLogger("tavoli.ledger")


def parse_kind(kind) -> EntryKind:
    if isinstance(kind, EntryKind):
        return kind
    try:
        return EntryKind(str(kind or "").strip().upper())
    except ValueError:
        raise ValidationError("无效的交易类型", kind=kind)


def check_delta_sign(kind: EntryKind, delta: int) -> None:
    # EARNED 为正，REDEEMED 为负，ADJUSTMENT 任意方向但不能为0
    if delta == 0:
        raise ValidationError("积分变动不能为0", kind=kind.value)
    if kind == EntryKind.EARNED and delta < 0:
        raise ValidationError("获得积分必须为正数", kind=kind.value, delta=delta)
    if kind == EntryKind.REDEEMED and delta > 0:
        raise ValidationError("兑换积分必须为负数", kind=kind.value, delta=delta)


def local_timezone(tz_name: str | None = None):
    tz_name = tz_name or settings.TIMEZONE
    return timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)


def local_day_bounds(day: date, tz_name: str | None = None) -> tuple[datetime, datetime]:
    """UTC (naive) [start, end) of the calendar day ``day`` in ``tz_name``."""
    tz = local_timezone(tz_name)
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def _empty_totals() -> dict[str, dict[str, int]]:
    return {kind.value: {"total_points": 0, "count": 0} for kind in EntryKind}


class TransactionLedger:
    def __init__(
        self,
        session_factory,
        registry: TableRegistry,
        limits: Limits | None = None,
        *,
        write_retries: int | None = None,
    ):
        self._session_factory = session_factory
        self.registry = registry
        self.limits = limits or settings.limits()
        self.write_retries = settings.LEDGER_WRITE_RETRIES if write_retries is None else write_retries

    async def record(
        self,
        table_id: int,
        actor_id: str,
        delta: int,
        kind,
        note: str | None = None,
    ) -> tuple[Table, LedgerEntry]:
        if not actor_id:
            raise ValidationError("缺少操作人")
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("积分变动必须是整数", delta=delta)
        kind = parse_kind(kind)
        check_delta_sign(kind, delta)
        note = self._clean_note(note)

        attempt = 0
        while True:
            try:
                return await self._record_once(table_id, actor_id, delta, kind, note)
            except OperationalError as exc:
                # sqlite 写锁等待超时；事务已回滚，可安全重试
                if "locked" not in str(exc).lower() or attempt >= self.write_retries:
                    raise
                attempt += 1
                logger.warning("ledger write contention table=%s attempt=%s", table_id, attempt)
                await asyncio.sleep(0.05 * attempt)

    async def _record_once(self, table_id, actor_id, delta, kind: EntryKind, note):
        async with self._session_factory() as session:
            now = datetime.utcnow()
            table = await self.registry.apply_delta(table_id, delta, session=session, now=now)
            entry = LedgerEntry(
                table_id=table_id,
                actor_id=actor_id,
                delta=delta,
                kind=kind.value,
                note=note,
                balance_before=table.balance - delta,
                balance_after=table.balance,
                created_at=now,
            )
            session.add(entry)
            await session.commit()
        logger.info(
            "ledger entry id=%s table=%s kind=%s delta=%s balance=%s->%s actor=%s",
            entry.id, table_id, kind.value, delta, entry.balance_before, entry.balance_after, actor_id,
        )
        return table, entry

    def _clean_note(self, note) -> str | None:
        if note is None:
            return None
        if not isinstance(note, str):
            raise ValidationError("备注必须是字符串")
        note = note.strip()
        max_length = self.limits.note.max_length
        if len(note) > max_length:
            raise ValidationError(f"备注不能超过{max_length}个字符", max_length=max_length)
        return note or None

    # ---- queries ----

    async def history_for_table(self, table_id: int, limit: int | None = None, *, include_inactive: bool = False) -> list[LedgerEntry]:
        await self.registry.resolve_by_id(table_id, include_inactive=include_inactive)
        limit = clamp_limit(limit, settings.HISTORY_DEFAULT_LIMIT)
        async with self._session_factory() as session:
            rows = await session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.table_id == table_id)
                .order_by(LedgerEntry.id.desc())
                .limit(limit)
            )
            return list(rows.scalars().all())

    async def activity_for_actor(self, actor_id: str, limit: int | None = None) -> list[LedgerEntry]:
        limit = clamp_limit(limit, settings.ACTIVITY_DEFAULT_LIMIT)
        async with self._session_factory() as session:
            rows = await session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.actor_id == actor_id)
                .order_by(LedgerEntry.id.desc())
                .limit(limit)
            )
            return list(rows.scalars().all())

    async def list_entries(
        self,
        *,
        kind=None,
        table_id: int | None = None,
        actor_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[LedgerEntry], int]:
        filters = []
        if kind:
            filters.append(LedgerEntry.kind == parse_kind(kind).value)
        if table_id is not None:
            filters.append(LedgerEntry.table_id == table_id)
        if actor_id:
            filters.append(LedgerEntry.actor_id == actor_id)
        limit = clamp_limit(limit, settings.ACTIVITY_DEFAULT_LIMIT)
        offset = max(0, offset or 0)
        async with self._session_factory() as session:
            total = (await session.execute(select(func.count(LedgerEntry.id)).where(*filters))).scalar() or 0
            rows = await session.execute(
                select(LedgerEntry)
                .where(*filters)
                .order_by(LedgerEntry.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(rows.scalars().all()), total

    async def daily_aggregate(self, day: date | None = None) -> dict[str, dict[str, int]]:
        day = day or datetime.now(local_timezone()).date()
        start, end = local_day_bounds(day)
        return await self._totals(LedgerEntry.created_at >= start, LedgerEntry.created_at < end)

    async def actor_totals(self, actor_id: str) -> dict[str, dict[str, int]]:
        return await self._totals(LedgerEntry.actor_id == actor_id)

    async def _totals(self, *filters) -> dict[str, dict[str, int]]:
        totals = _empty_totals()
        async with self._session_factory() as session:
            rows = await session.execute(
                select(LedgerEntry.kind, func.sum(LedgerEntry.delta), func.count(LedgerEntry.id))
                .where(*filters)
                .group_by(LedgerEntry.kind)
            )
            for kind, total_points, count in rows.all():
                totals[kind] = {"total_points": int(total_points or 0), "count": int(count or 0)}
        return totals

    async def replay_balance(self, table_id: int) -> int:
        """Re-derive a table's balance from its entries, applied in order."""
        balance = 0
        async with self._session_factory() as session:
            rows = await session.execute(
                select(LedgerEntry.delta).where(LedgerEntry.table_id == table_id).order_by(LedgerEntry.id.asc())
            )
            for delta in rows.scalars().all():
                balance += delta
        return balance
