from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from app.config import LengthLimit, Limits
from app.errors import InvalidStateError, NotFoundError, ValidationError
from app.services.ledger import TransactionLedger, local_day_bounds, parse_kind
from models.ledger import EntryKind


async def _table_with(registry, ledger, number: int, *deltas: int):
    table = await registry.create_table(number)
    for delta in deltas:
        kind = EntryKind.EARNED if delta > 0 else EntryKind.REDEEMED
        table, _ = await ledger.record(table.id, "cashier-1", delta, kind)
    return table


class TestRecord:
    async def test_snapshots_balance_before_and_after(self, registry, ledger):
        table = await registry.create_table(1)

        table, entry = await ledger.record(table.id, "cashier-1", 10, "earned", "  prima visita ")

        assert table.balance == 10
        assert (entry.balance_before, entry.balance_after) == (0, 10)
        assert entry.kind == "EARNED"
        assert entry.note == "prima visita"
        assert entry.actor_id == "cashier-1"

    async def test_underflow_writes_nothing(self, registry, ledger):
        table = await _table_with(registry, ledger, 1, 5)

        with pytest.raises(InvalidStateError):
            await ledger.record(table.id, "cashier-1", -6, EntryKind.REDEEMED)

        assert (await registry.resolve_by_id(table.id)).balance == 5
        _, total = await ledger.list_entries(table_id=table.id)
        assert total == 1

    async def test_unknown_table_writes_nothing(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.record(404, "cashier-1", 5, EntryKind.EARNED)

        _, total = await ledger.list_entries()
        assert total == 0

    async def test_rejects_bad_inputs(self, database, registry):
        ledger = TransactionLedger(database.session_factory, registry, Limits(note=LengthLimit(max_length=5)))
        table = await registry.create_table(1)

        with pytest.raises(ValidationError):
            await ledger.record(table.id, "", 1, EntryKind.EARNED)
        with pytest.raises(ValidationError):
            await ledger.record(table.id, "cashier-1", 1, "BONUS")
        with pytest.raises(ValidationError):
            await ledger.record(table.id, "cashier-1", 1.0, EntryKind.EARNED)
        with pytest.raises(ValidationError):
            await ledger.record(table.id, "cashier-1", 1, EntryKind.EARNED, "troppo lunga")

    @pytest.mark.parametrize(
        "delta, kind",
        [(-7, EntryKind.EARNED), (5, EntryKind.REDEEMED), (0, EntryKind.EARNED), (0, EntryKind.ADJUSTMENT)],
    )
    async def test_delta_sign_must_match_kind(self, registry, ledger, delta, kind):
        table = await _table_with(registry, ledger, 1, 10)

        with pytest.raises(ValidationError):
            await ledger.record(table.id, "cashier-1", delta, kind)

        assert (await registry.resolve_by_id(table.id)).balance == 10
        _, total = await ledger.list_entries(table_id=table.id)
        assert total == 1

    async def test_adjustment_may_go_either_way(self, registry, ledger):
        table = await _table_with(registry, ledger, 1, 10)

        table, _ = await ledger.record(table.id, "admin-1", -4, EntryKind.ADJUSTMENT)
        table, _ = await ledger.record(table.id, "admin-1", 9, EntryKind.ADJUSTMENT)

        assert table.balance == 15

    def test_parse_kind(self):
        assert parse_kind(" redeemed ") is EntryKind.REDEEMED
        assert parse_kind(EntryKind.ADJUSTMENT) is EntryKind.ADJUSTMENT
        with pytest.raises(ValidationError):
            parse_kind(None)


class TestHistory:
    async def test_history_is_newest_first_and_limited(self, registry, ledger):
        table = await _table_with(registry, ledger, 1, 10, 5, -3, 7)

        history = await ledger.history_for_table(table.id, 3)

        assert [e.delta for e in history] == [7, -3, 5]

    async def test_replaying_history_reconstructs_balance(self, registry, ledger):
        table = await _table_with(registry, ledger, 1, 10, 20, -15, 4, -19)

        history = await ledger.history_for_table(table.id, 100)
        running = 0
        for entry in reversed(history):
            assert entry.balance_before == running
            running += entry.delta
            assert entry.balance_after == running

        assert running == table.balance == 0
        assert await ledger.replay_balance(table.id) == table.balance

    async def test_inactive_history_needs_explicit_opt_in(self, registry, ledger):
        table = await _table_with(registry, ledger, 1, 10)
        await registry.deactivate(table.id)

        with pytest.raises(NotFoundError):
            await ledger.history_for_table(table.id)

        history = await ledger.history_for_table(table.id, include_inactive=True)
        assert len(history) == 1

    async def test_activity_for_actor(self, registry, ledger):
        first = await registry.create_table(1)
        second = await registry.create_table(2)
        await ledger.record(first.id, "giulia", 10, EntryKind.EARNED)
        await ledger.record(second.id, "marco", 4, EntryKind.EARNED)
        await ledger.record(second.id, "giulia", 6, EntryKind.EARNED)

        activity = await ledger.activity_for_actor("giulia")

        assert [(e.table_id, e.delta) for e in activity] == [(second.id, 6), (first.id, 10)]

    async def test_list_entries_filters(self, registry, ledger):
        table = await _table_with(registry, ledger, 1, 10, -4, 3)

        redeemed, total = await ledger.list_entries(kind="REDEEMED", table_id=table.id)

        assert total == 1
        assert redeemed[0].delta == -4


class TestAggregates:
    async def test_daily_aggregate_groups_by_kind(self, registry, ledger):
        await _table_with(registry, ledger, 1, 10, 5, -3)

        today = datetime.utcnow().date()
        totals = await ledger.daily_aggregate(today)

        assert totals["EARNED"] == {"total_points": 15, "count": 2}
        assert totals["REDEEMED"] == {"total_points": -3, "count": 1}
        assert totals["ADJUSTMENT"] == {"total_points": 0, "count": 0}

        yesterday = await ledger.daily_aggregate(today - timedelta(days=1))
        assert all(values["count"] == 0 for values in yesterday.values())

    async def test_actor_totals(self, registry, ledger):
        table = await registry.create_table(1)
        await ledger.record(table.id, "giulia", 10, EntryKind.EARNED)
        await ledger.record(table.id, "giulia", -2, EntryKind.REDEEMED)
        await ledger.record(table.id, "marco", 1, EntryKind.EARNED)

        totals = await ledger.actor_totals("giulia")

        assert totals["EARNED"] == {"total_points": 10, "count": 1}
        assert totals["REDEEMED"] == {"total_points": -2, "count": 1}

    def test_local_day_bounds_utc(self):
        start, end = local_day_bounds(date(2026, 3, 1), "UTC")

        assert start == datetime(2026, 3, 1)
        assert end == datetime(2026, 3, 2)

    def test_local_day_bounds_follow_configured_zone(self):
        try:
            ZoneInfo("Europe/Rome")
        except ZoneInfoNotFoundError:
            pytest.skip("tz database not available")

        start, end = local_day_bounds(date(2026, 7, 15), "Europe/Rome")

        # CEST = UTC+2
        assert start == datetime(2026, 7, 14, 22, 0)
        assert end == datetime(2026, 7, 15, 22, 0)
