from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from app.config import settings
from app.migrations import run_migrations

Base = declarative_base()


class Database:
    """Process-wide storage handle: one engine plus its session factory."""

    def __init__(self, url: str | None = None, *, echo: bool | None = None, busy_timeout: float | None = None):
        self.url = url or settings.DATABASE_URL
        self.is_sqlite = self.url.startswith("sqlite")
        timeout = settings.DATABASE_BUSY_TIMEOUT if busy_timeout is None else busy_timeout
        connect_args = {"timeout": timeout} if self.is_sqlite else {}
        self.engine = create_async_engine(
            self.url,
            echo=settings.DATABASE_ECHO if echo is None else echo,
            connect_args=connect_args,
        )
        if self.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _sqlite_on_connect)
        self.session_factory = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def create_tables(self):
        # 注册所有模型
        import models.table  # noqa: F401
        import models.ledger  # noqa: F401
        import models.logs  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await run_migrations(conn)

    async def session(self):
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def dispose(self):
        await self.engine.dispose()


def _sqlite_on_connect(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        # WAL: 读不阻塞写
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()
