import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from closerflow.core.config import settings
from closerflow.models.organization import Base


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    # Create tables in dev/test without running Alembic
    if settings.env in {"dev", "test"}:
        import closerflow.models  # noqa: F401  registers every table on Base

        Base.metadata.create_all(bind=bind or engine)
        logging.getLogger(__name__).info("database tables ensured (env=%s)", settings.env)
