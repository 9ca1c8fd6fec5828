# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# The job table is written by many threads at once (API request threads
# and Celery worker threads), so everything here is synchronous SQLAlchemy
# with one short-lived session per unit of work.
#
# SESSION LIFECYCLE:
# 1. `session_scope(factory)` opens a new session
# 2. The caller issues its statements
# 3. The session commits on exit, rolls back on exception, always closes
#
# Two ways to obtain a session factory:
#   - `create_session_factory(url)`: explicit, used by JobSystem and tests
#     so several isolated queues can live in one process.
#   - `get_default_session_factory()`: lazily built from
#     settings.database_url_sync, the pgvector store's default wiring.
# =============================================================================

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from ragqueue.config import settings


def create_sync_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a sync engine for the given URL.

    SQLite connections are shared across worker threads, so the
    same-thread check is disabled and the busy timeout raised; writers
    still serialise on SQLite's database lock. Other backends get a
    connection pool sized for worker concurrency plus API threads.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=10,
        pool_pre_ping=True,
    )


def create_session_factory(
    database_url: str | None = None,
    engine: Engine | None = None,
) -> sessionmaker[Session]:
    """Build a session factory bound to `engine` or a new engine for `database_url`."""
    if engine is None:
        engine = create_sync_engine(
            database_url or settings.database_url_sync,
            echo=settings.debug,
        )
    # expire_on_commit=False: rows read inside a session are handed to other
    # threads after the session closes.
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope(factory) as session:
            session.execute(update(JobRecord)...)
            # Auto-commits on exit, auto-rollbacks on exception
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Default Session Factory (Lazy Initialization)
# ---------------------------------------------------------------------------
# Built on first use so importing this module never needs a database
# driver (psycopg2 is only required once a PostgreSQL URL is actually used).
# ---------------------------------------------------------------------------

_default_session_factory: sessionmaker[Session] | None = None


def get_default_session_factory() -> sessionmaker[Session]:
    """Lazily create and cache the session factory for settings.database_url_sync."""
    global _default_session_factory
    if _default_session_factory is None:
        _default_session_factory = create_session_factory(settings.database_url_sync)
    return _default_session_factory

