from contextlib import contextmanager
from typing import Iterator

from sqlmodel import SQLModel, create_engine, Session
from config.settings import DATABASE_URL, DATABASE_ECHO

# ---------------------------------------------------------------------
# Database Engine Configuration
# ---------------------------------------------------------------------
def build_engine(url: str = DATABASE_URL, echo: bool = DATABASE_ECHO):
    """
    Create the SQLAlchemy engine for `url`.
    SQLite gets a longer busy timeout so concurrent writers queue up
    instead of failing fast; server databases get a sized pool.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        url,
        echo=echo,
        pool_size=10,         # Max number of DB connections in pool
        max_overflow=5,       # Allow 5 extra connections during peak load
        pool_recycle=300,     # Recycle connections every 5 min
        pool_pre_ping=True,   # Verify connection health before use
        pool_timeout=60       # Wait up to 60 seconds for a connection
    )


engine = build_engine()


# ---------------------------------------------------------------------
# Database Initialization
# ---------------------------------------------------------------------
def create_db_and_tables():
    """
    Create all database tables defined in SQLModel models.
    Should be called once at app startup (e.g., in main.py).
    """
    import database.models  # noqa: F401  registers the tables on the metadata

    SQLModel.metadata.create_all(engine)


# ---------------------------------------------------------------------
# Dependency for FastAPI Routes (context-managed)
# ---------------------------------------------------------------------
def get_session():
    """
    Dependency for FastAPI endpoints - provides a scoped SQLModel session.
    Example:
        @router.get("/roles")
        def list_roles(session: Session = Depends(get_session)):
            ...
    """
    with Session(engine) as session:
        yield session


# ---------------------------------------------------------------------
# Direct Session for Scripts / Worker Threads
# ---------------------------------------------------------------------
def get_db_session() -> Session:
    """
    For non-FastAPI contexts (scripts, worker threads of the statistics
    report). Returns a raw Session you must close manually.
    """
    return Session(engine)


# ---------------------------------------------------------------------
# Transaction scope
# ---------------------------------------------------------------------
@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """
    Run a block of writes as one unit: commit when the block finishes,
    roll back everything it did when it raises.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
