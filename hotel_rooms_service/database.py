from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # sessions are handed across FastAPI's worker threads
    connect_args = {"check_same_thread": False, "timeout": 30}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    Yield a SQLAlchemy session for the hotel rooms service.

    Used as a FastAPI dependency: one session per request, always closed
    afterwards. Core operations receive this session explicitly and own
    their commit/rollback.

    Yields
    ------
    Session
        Active SQLAlchemy session bound to the service engine.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
