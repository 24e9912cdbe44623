from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from payment_core.config import get_settings

Base = declarative_base()


def build_engine(database_url: str):
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


def build_session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


# Unset DATABASE_URL leaves the store unconfigured; requests needing it fail with 500.
DATABASE_URL = get_settings().database_url
engine = build_engine(DATABASE_URL) if DATABASE_URL else None
SessionLocal = build_session_factory(engine) if engine is not None else None
