from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from mealmind.core.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (local runs, tests) does not take pool sizing and needs cross-thread access
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


# Bounded connection pool shared by all requests
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# autocommit=False: every write goes through an explicit commit
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models; main.py imports the models so create_all sees them
Base = declarative_base()


def get_db():
    """
    Dependency for getting database session.

    One session per request, closed when the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        # Returns the connection to the pool even if the handler raised
        db.close()
