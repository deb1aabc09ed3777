'''
Database Engine file.
1- Engine: creates and manages TCP Pool connections
2- AsyncSessionLocal: Session Creator (with engine as bind)
3- get_db_session: Dependency to create, yield and manage the life-cycle of a session.
'''
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator
from ..common.config import settings
from ..common.logger import log
from .models import Base

# We define them as None. They will be created by the app's lifespan.
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None

def _engine_options(url: str) -> dict:
    """SQLite (tests, local runs) gets a single shared connection; servers get a pool."""
    if url.startswith("sqlite"):
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": -1,
        "pool_pre_ping": True,
    }

def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """
    Lets SQLAlchemy own BEGIN on SQLite so SAVEPOINT (begin_nested) works.
    pysqlite/aiosqlite otherwise manage transactions themselves.
    """
    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

def create_db_engine_and_session_factory():
    """
    Creates the engine and session factory.
    This is called by the app's lifespan event.
    """
    global engine, AsyncSessionLocal

    log.info("Creating database engine for URL...")
    try:
        # 1. Create the asynchronous engine
        engine = create_async_engine(
            settings.database_url,
            echo=False,
            **_engine_options(settings.database_url)
        )
        if settings.database_url.startswith("sqlite"):
            enable_sqlite_savepoints(engine)

        # 2. Create the AsyncSessionLocal factory
        AsyncSessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
        log.info("Async database engine and session factory created successfully.")
    except Exception as e:
        log.critical(f"Failed to create async database engine: {e}", exc_info=True)
        raise

async def init_models():
    """Creates any missing tables. Called by the app's lifespan after the engine exists."""
    if engine is None:
        raise RuntimeError("Database engine is not available.")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("Database tables verified.")

async def dispose_db_engine():
    """Disposes of the engine. Called by the app's lifespan."""
    global engine, AsyncSessionLocal
    if engine:
        await engine.dispose()
        log.info("Database engine disposed.")
    engine = None
    AsyncSessionLocal = None

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The whole request is one unit of work: committed if the request
    succeeds, rolled back if any exception escapes, always closed.
    """
    if AsyncSessionLocal is None:
        log.error("AsyncSessionLocal is not initialized. App lifespan may not have run.")
        raise RuntimeError("Database session factory is not available.")

    session = AsyncSessionLocal() # Create a new session
    try:
        yield session
        await session.commit()  # Commit on successful request
    except Exception as e:
        await session.rollback() # Rollback on error
        log.error(f"Database session rolled back due to error: {e}")
        raise # Re-raise the exception so FastAPI can handle it
    finally:
        await session.close() # Always close the session
