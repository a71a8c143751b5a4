from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import settings


def create_emr_engine(database_url: str):
    """
    Engine for the EMR record store.

    The EMR database is shared with the clinical application and may drop
    idle connections, so pooled connections are checked before use.
    """
    return create_engine(database_url, pool_pre_ping=True)


engine = create_emr_engine(settings.database_url)

# Sessions only read; documents are never written back
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()

def get_db():
    """Database session dependency for FastAPI endpoints"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
