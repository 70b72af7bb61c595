import argparse
import asyncio
import random
import sys
from pathlib import Path

# Ensure backend root on import path
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


async def recreate_db(db_path: Path, tables: int, seed_points: bool):
    from app.database import Database
    from app.services.ledger import TransactionLedger
    from app.services.points import PointsService
    from app.services.table_registry import TableRegistry
    from models.ledger import EntryKind

    # Remove existing SQLite file (and its WAL companions)
    for suffix in ("", "-wal", "-shm"):
        candidate = db_path.with_name(db_path.name + suffix)
        if candidate.exists():
            candidate.unlink()

    db = Database(f"sqlite+aiosqlite:///{db_path}")
    try:
        await db.create_tables()
        registry = TableRegistry(db.session_factory)
        ledger = TransactionLedger(db.session_factory, registry)
        points = PointsService(registry, ledger)
        for number in range(1, tables + 1):
            table = await registry.create_table(number, f"Tavolo {number}", actor_id="seed-admin")
            if seed_points:
                # 通过账本发放，余额与流水保持一致
                await points.apply(
                    actor_id="seed-cashier",
                    points=random.randint(10, 90),
                    kind=EntryKind.EARNED,
                    table_id=table.id,
                    note="初始积分",
                )
    finally:
        await db.dispose()


def main():
    parser = argparse.ArgumentParser(description="Recreate the SQLite database and seed tables")
    parser.add_argument("--db", default=str(BACKEND_ROOT / "tavoli.db"))
    parser.add_argument("--tables", type=int, default=10)
    parser.add_argument("--no-points", action="store_true", help="create tables with zero balance")
    args = parser.parse_args()
    asyncio.run(recreate_db(Path(args.db), args.tables, not args.no_points))
    print(f"Database recreated at {args.db} with {args.tables} tables.")


if __name__ == '__main__':
    main()
