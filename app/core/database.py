import logging
from collections.abc import AsyncIterator

from fastapi import Request
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import Settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Process-wide engine and session factory.

    Built once in the application lifespan and closed on shutdown. The pool
    pings connections before handing them out, so a dropped connection is
    replaced on the next checkout; the call that hit the failure is not retried.
    """

    def __init__(self, settings: Settings):
        options = {
            "pool_pre_ping": True,
            "connect_args": {"timeout": settings.store_timeout},
        }
        if not settings.database_url.startswith("sqlite"):
            options["pool_timeout"] = settings.store_timeout
        self.engine = create_async_engine(settings.database_url, **options)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        SQLAlchemyInstrumentor().instrument(engine=self.engine.sync_engine)

    async def create_all(self) -> None:
        from app.models import catalog, user  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready")

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    db: Database = request.app.state.db
    async with db.session_factory() as session:
        yield session
