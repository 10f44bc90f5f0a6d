import os
import asyncio
import logging
from sqlmodel import SQLModel
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from achievements.errors import PersistenceFailure

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+aiosqlite:///./achievements.db",  # swap with Postgres URL if needed
)

# Upper bound in seconds for any single storage call made by the engine.
STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "10"))
PERSISTENCE_RETRIES = int(os.getenv("PERSISTENCE_RETRIES", "3"))

logger = logging.getLogger(__name__)

# Control SQL echo via environment variable and route output through logging
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
if SQL_ECHO:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # sqlite waits this long on a locked database before giving up
        return {"connect_args": {"timeout": STORAGE_TIMEOUT_SECONDS}}
    return {"pool_timeout": STORAGE_TIMEOUT_SECONDS, "pool_pre_ping": True}


engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO, **_engine_kwargs(DATABASE_URL))

async_session = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables() -> None:
    from achievements.models import (  # noqa: F401
        User,
        Institution,
        Student,
        LearningModule,
        Quiz,
        QuizQuestion,
        QuizAttempt,
        BadgeDefinition,
        StudentBadgeAward,
        StudentRanking,
        Settings,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session


def insert_if_absent_statement(db: AsyncSession, model, values: dict, conflict_columns: list[str]):
    """Build ``INSERT ... ON CONFLICT (cols) DO NOTHING`` for the session's dialect.

    The statement's ``rowcount`` is 1 when a row was inserted and 0 when the
    unique constraint already held a matching row.
    """

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"insert-if-absent is not supported on {dialect}")
    return (
        insert(model.__table__)
        .values(**values)
        .on_conflict_do_nothing(index_elements=conflict_columns)
    )


async def with_storage_retry(operation, description: str, retries: int | None = None):
    """Run ``operation`` (a coroutine factory) with a timeout and bounded retries.

    Transient failures (lock contention, dropped connections, timeouts) are
    retried with a linear backoff.  When the retries are exhausted the last
    error is raised as :class:`PersistenceFailure`.
    """

    attempts = PERSISTENCE_RETRIES if retries is None else retries
    last_exc: Exception | None = None
    for attempt in range(max(1, attempts)):
        try:
            return await asyncio.wait_for(operation(), timeout=STORAGE_TIMEOUT_SECONDS)
        except (OperationalError, asyncio.TimeoutError) as exc:
            last_exc = exc
            logger.warning(
                "Transient storage error during %s (attempt %s/%s): %s",
                description,
                attempt + 1,
                attempts,
                exc,
            )
            if attempt + 1 < attempts:
                await asyncio.sleep(0.05 * (attempt + 1))
    raise PersistenceFailure(f"{description} failed after {attempts} attempts") from last_exc
