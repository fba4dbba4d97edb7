import logging
import sys

from uuid import uuid4

from sqlalchemy import URL
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from genmedia.common.model import Base
from genmedia.core.conf import settings
from genmedia.core.path_conf import BASE_PATH

logger = logging.getLogger(__name__)


def create_database_url(*, unittest: bool = False) -> URL:
    """
    Build the database connection URL

    :param unittest: use a separate schema for tests
    :return:
    """
    schema = f'{settings.DATABASE_SCHEMA}_test' if unittest else settings.DATABASE_SCHEMA
    if settings.DATABASE_TYPE == 'sqlite':
        return URL.create(drivername='sqlite+aiosqlite', database=str(BASE_PATH.parent / f'{schema}.db'))
    return URL.create(
        drivername='postgresql+asyncpg',
        username=settings.DATABASE_USER,
        password=settings.DATABASE_PASSWORD,
        host=settings.DATABASE_HOST,
        port=settings.DATABASE_PORT,
        database=schema,
    )


def create_async_engine_and_session(url: str | URL) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create the async engine and session factory

    :param url: database connection URL
    :return:
    """
    try:
        engine = create_async_engine(
            url,
            echo=settings.DATABASE_ECHO,
            echo_pool=settings.DATABASE_POOL_ECHO,
            future=True,
            pool_pre_ping=True,
        )
    except Exception as e:
        logger.error(f'Database connection failed: {e}')
        sys.exit()
    else:
        db_session = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        return engine, db_session


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create every mapped table"""
    from genmedia.src.billing import model  # noqa: F401

    async with (engine or async_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine | None = None) -> None:
    """Drop every mapped table"""
    from genmedia.src.billing import model  # noqa: F401

    async with (engine or async_engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def uuid4_str() -> str:
    """Database-side uuid string"""
    return str(uuid4())


SQLALCHEMY_DATABASE_URL = create_database_url()

async_engine, async_db_session = create_async_engine_and_session(SQLALCHEMY_DATABASE_URL)
