from sqlalchemy import event, func, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

Base = declarative_base()

ORDER_STATUSES = ["Cleared", "Refunded", "Cancelled"]
TRANSACTION_STATUSES = ["Pending", "Cleared", "Declined", "Refunded", "Partially refunded"]


def _normalize_async_url(url: str) -> str:
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if url.startswith("mysql://"):
        return url.replace("mysql://", "mysql+aiomysql://", 1)
    return url


def make_engine(database_url: str) -> AsyncEngine:
    db_url = _normalize_async_url(database_url)

    if db_url.startswith("sqlite+aiosqlite://"):
        # one connection per checkout, so nothing is pinned to an event loop
        engine = create_async_engine(db_url, poolclass=NullPool)

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _):
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.execute("PRAGMA busy_timeout=5000;")
            cur.close()

        return engine

    return create_async_engine(db_url, pool_pre_ping=True)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine):
    # register tables with Base before create_all
    from checkout import models

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        for table, names in (
            (models.Status.__table__, ORDER_STATUSES),
            (models.TransactionStatus.__table__, TRANSACTION_STATUSES),
        ):
            count = (await conn.execute(select(func.count()).select_from(table))).scalar_one()
            if count == 0:
                await conn.execute(insert(table), [{"name": name} for name in names])
