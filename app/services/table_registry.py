"""
Table Registry: identity and authoritative point balance of every table.

The balance is only ever changed through ``apply_delta``, a single
conditional UPDATE that adds the delta and checks the zero floor in the
same statement. Concurrent cashiers on the same table are serialized by the
database write lock taken by that UPDATE; different tables share nothing.
"""
import logging
import re
from datetime import datetime

from sqlalchemy import select, update, func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Limits, settings
from app.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.utils.operation_log import (
    ACTION_TABLE_CREATE,
    ACTION_TABLE_DEACTIVATE,
    ACTION_TABLE_RENAME,
    add_operation_log,
)
from models.table import Table

logger = logging.getLogger("tavoli.registry")

_UNSAFE_NAME_CHARS = re.compile(r"[<>\"'&]")


def derive_qr_token(number: int, prefix: str | None = None) -> str:
    # 存储规范化后的形式，与查询时的处理一致
    return normalize_qr_token(f"{prefix if prefix is not None else settings.QR_TOKEN_PREFIX}{number}")


def normalize_qr_token(qr_token: str | None) -> str:
    return (qr_token or "").strip().upper()


def leaderboard_order():
    return (Table.balance.desc(), Table.last_balance_change_at.asc(), Table.id.asc())


class TableRegistry:
    def __init__(self, session_factory, limits: Limits | None = None, *, qr_prefix: str | None = None):
        self._session_factory = session_factory
        self.limits = limits or settings.limits()
        self.qr_prefix = qr_prefix if qr_prefix is not None else settings.QR_TOKEN_PREFIX

    # ---- validation ----

    def clean_name(self, name) -> str:
        if not isinstance(name, str):
            raise ValidationError("桌名必须是字符串")
        cleaned = _UNSAFE_NAME_CHARS.sub("", name).strip()
        if not cleaned:
            raise ValidationError("桌名不能为空")
        max_length = self.limits.name.max_length
        if len(cleaned) > max_length:
            raise ValidationError(f"桌名不能超过{max_length}个字符", max_length=max_length)
        return cleaned

    # ---- create / lookup ----

    async def create_table(self, number, name: str | None = None, *, actor_id: str | None = None) -> Table:
        if isinstance(number, bool) or not isinstance(number, int) or number < 1:
            raise ValidationError("桌号必须是正整数", number=number)
        display_name = self.clean_name(name if name is not None else f"Tavolo {number}")
        qr_token = derive_qr_token(number, self.qr_prefix)

        async with self._session_factory() as session:
            # 唯一性覆盖已停用的桌子
            existing = (await session.execute(
                select(Table.id).where(or_(Table.number == number, Table.qr_token == qr_token))
            )).first()
            if existing:
                raise ConflictError("桌号或二维码已存在", number=number, qr_token=qr_token)

            now = datetime.utcnow()
            table = Table(
                number=number,
                display_name=display_name,
                qr_token=qr_token,
                balance=0,
                active=True,
                last_balance_change_at=now,
                created_at=now,
                created_by=actor_id,
            )
            session.add(table)
            try:
                await session.flush()
                add_operation_log(
                    session,
                    actor_id=actor_id,
                    action=ACTION_TABLE_CREATE,
                    table_id=table.id,
                    number=number,
                    name=display_name,
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictError("桌号或二维码已存在", number=number, qr_token=qr_token)
            await session.refresh(table)
        logger.info("table created id=%s number=%s token=%s", table.id, number, qr_token)
        return table

    async def resolve_by_token(self, qr_token: str) -> Table:
        token = normalize_qr_token(qr_token)
        if not token:
            raise NotFoundError("二维码无效或桌子不存在")
        async with self._session_factory() as session:
            table = (await session.execute(
                select(Table).where(Table.qr_token == token, Table.active.is_(True))
            )).scalar_one_or_none()
        if not table:
            raise NotFoundError("二维码无效或桌子不存在", qr_token=token)
        return table

    async def resolve_by_id(self, table_id: int, *, include_inactive: bool = False) -> Table:
        async with self._session_factory() as session:
            table = await session.get(Table, table_id)
        if not table or (not table.active and not include_inactive):
            raise NotFoundError("桌子不存在", table_id=table_id)
        return table

    # ---- mutations ----

    async def apply_delta(
        self,
        table_id: int,
        delta: int,
        *,
        session: AsyncSession | None = None,
        now: datetime | None = None,
    ) -> Table:
        """Atomically add ``delta`` to the balance, refusing to go below zero.

        With ``session`` the update joins the caller's transaction and is not
        committed here; the ledger relies on this to write its entry in the
        same unit.
        """
        if session is None:
            async with self._session_factory() as own_session:
                table = await self.apply_delta(table_id, delta, session=own_session, now=now)
                await own_session.commit()
                return table

        now = now or datetime.utcnow()
        stmt = (
            update(Table)
            .where(
                Table.id == table_id,
                Table.active.is_(True),
                Table.balance + delta >= 0,
            )
            .values(balance=Table.balance + delta, last_balance_change_at=now)
            .returning(Table.id)
            .execution_options(synchronize_session=False)
        )
        updated_id = (await session.execute(stmt)).scalar_one_or_none()
        if updated_id is None:
            current = (await session.execute(
                select(Table.active, Table.balance).where(Table.id == table_id)
            )).first()
            if current is None or not current.active:
                raise NotFoundError("桌子不存在", table_id=table_id)
            raise InvalidStateError(
                f"积分不足，当前: {current.balance}，需要: {-delta}",
                table_id=table_id,
                balance=current.balance,
                delta=delta,
            )
        return await session.get(Table, table_id, populate_existing=True)

    async def rename(self, table_id: int, new_name, *, actor_id: str | None = None) -> Table:
        display_name = self.clean_name(new_name)
        async with self._session_factory() as session:
            table = await session.get(Table, table_id)
            if not table or not table.active:
                raise NotFoundError("桌子不存在", table_id=table_id)
            old_name = table.display_name
            table.display_name = display_name
            add_operation_log(
                session,
                actor_id=actor_id,
                action=ACTION_TABLE_RENAME,
                table_id=table_id,
                old_name=old_name,
                new_name=display_name,
            )
            await session.commit()
            await session.refresh(table)
        return table

    async def deactivate(self, table_id: int, *, actor_id: str | None = None) -> Table:
        async with self._session_factory() as session:
            table = await session.get(Table, table_id)
            if not table:
                raise NotFoundError("桌子不存在", table_id=table_id)
            if table.active:
                table.active = False
                add_operation_log(
                    session,
                    actor_id=actor_id,
                    action=ACTION_TABLE_DEACTIVATE,
                    table_id=table_id,
                    balance=table.balance,
                )
                await session.commit()
                await session.refresh(table)
                logger.info("table deactivated id=%s balance=%s", table_id, table.balance)
        return table

    # ---- ranking ----

    async def leaderboard(self, limit: int | None = None) -> list[Table]:
        limit = clamp_limit(limit, settings.LEADERBOARD_DEFAULT_LIMIT)
        async with self._session_factory() as session:
            rows = await session.execute(
                select(Table).where(Table.active.is_(True)).order_by(*leaderboard_order()).limit(limit)
            )
            return list(rows.scalars().all())

    async def leaderboard_position(self, table: Table) -> int:
        ahead = or_(
            Table.balance > table.balance,
            and_(Table.balance == table.balance, Table.last_balance_change_at < table.last_balance_change_at),
            and_(
                Table.balance == table.balance,
                Table.last_balance_change_at == table.last_balance_change_at,
                Table.id < table.id,
            ),
        )
        async with self._session_factory() as session:
            count = (await session.execute(
                select(func.count(Table.id)).where(Table.active.is_(True), ahead)
            )).scalar() or 0
        return count + 1

    async def list_tables(self, *, active: bool = True, limit: int | None = None, offset: int = 0) -> tuple[list[Table], int]:
        limit = clamp_limit(limit, settings.LEADERBOARD_DEFAULT_LIMIT)
        offset = max(0, offset or 0)
        async with self._session_factory() as session:
            total = (await session.execute(
                select(func.count(Table.id)).where(Table.active.is_(active))
            )).scalar() or 0
            rows = await session.execute(
                select(Table)
                .where(Table.active.is_(active))
                .order_by(*leaderboard_order())
                .offset(offset)
                .limit(limit)
            )
            return list(rows.scalars().all()), total


def clamp_limit(limit, default: int) -> int:
    if limit is None:
        return default
    return max(1, min(int(limit), settings.QUERY_MAX_LIMIT))
