from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

from topflix.core.config import get_settings
from topflix.core.exceptions import ConfigurationError

# Load environment variables
load_dotenv()

Base = declarative_base()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None

def get_engine() -> Engine:
    """Engine for DATABASE_URL; a missing URL is a configuration error"""
    global _engine
    if _engine is None:
        database_url = get_settings().DATABASE_URL
        if not database_url:
            raise ConfigurationError(
                "Database not configured",
                details="DATABASE_URL environment variable is missing",
            )
        _engine = create_engine(database_url, pool_pre_ping=True)
        SessionLocal.configure(bind=_engine)
    return _engine

def get_db():
    """Dependency to get database session"""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
