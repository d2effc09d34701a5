import logging
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from variable_editor.config.settings import settings
from variable_editor.infrastructure.database.models import Base

logger = logging.getLogger("uvicorn.error")


def make_session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


# Create async engine
engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True)

# Create session factory
AsyncSessionLocal = make_session_factory(engine)


# Initialize database: create the template table if needed and check the connection
async def init_db(db_engine=engine):
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection successful")
