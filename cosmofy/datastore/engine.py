"""
记录存储的数据库引擎
SQLAlchemy异步引擎 + aiosqlite, 仅在 USE_DATABASE 开启时使用
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cosmofy.datastore.models import Base
from cosmofy.settings import global_settings

# 全局数据库引擎实例
engine = None
AsyncSessionLocal = None


async def init_db(
    database_url: str | None = None, echo: bool | None = None
) -> async_sessionmaker[AsyncSession]:
    """创建引擎和会话工厂, 建表; 重复调用会先释放旧引擎"""
    global engine, AsyncSessionLocal

    if engine is not None:
        await close_db()

    url = database_url or global_settings.database_url
    engine = create_async_engine(
        url,
        echo=global_settings.database_echo if echo is None else echo,
    )
    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Record store database ready: {engine.url.render_as_string(hide_password=True)}")
    return AsyncSessionLocal


async def close_db() -> None:
    """释放连接池并重置全局状态"""
    global engine, AsyncSessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """获取会话工厂（供 SqlRecordStore 使用）"""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return AsyncSessionLocal
