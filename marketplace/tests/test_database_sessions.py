import pytest
from sqlalchemy import select

from marketplace.common import create_engine, dispose_engines, get_session_factory, lifespan_session
from marketplace.common.database import SQLITE_BUSY_TIMEOUT_SECONDS
from marketplace.order_service.app.models import Base, Product


@pytest.mark.asyncio
async def test_sqlite_connections_wait_for_the_write_lock(tmp_path) -> None:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'busy.db'}")
    try:
        async with engine.connect() as conn:
            busy_timeout = (await conn.exec_driver_sql("PRAGMA busy_timeout")).scalar_one()
        assert busy_timeout == int(SQLITE_BUSY_TIMEOUT_SECONDS * 1000)
    finally:
        await dispose_engines()


@pytest.mark.asyncio
async def test_lifespan_session_rolls_back_on_error(tmp_path) -> None:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'rollback.db'}"
    engine = create_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = get_session_factory(database_url)
    try:
        with pytest.raises(RuntimeError):
            async with lifespan_session(session_factory) as session:
                session.add(Product(seller_id=1, title="Ghost", price_cents=100, stock=1))
                await session.flush()
                raise RuntimeError("abort")

        async with lifespan_session(session_factory) as session:
            session.add(Product(seller_id=1, title="Kept", price_cents=100, stock=1))

        async with session_factory() as session:
            titles = (await session.execute(select(Product.title))).scalars().all()
        assert titles == ["Kept"]
    finally:
        await dispose_engines()
