"""Database engine and session factory."""

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from jobscheduler.config import settings

Base = declarative_base()


def build_database_url(url: str, password: str = ""):
    """Return the store URL with the privileged credential applied."""
    database_url = make_url(url)
    if password:
        database_url = database_url.set(password=password)
    return database_url


@lru_cache(maxsize=None)
def get_engine() -> Engine:
    """Create the shared engine on first use."""
    url = build_database_url(settings.DATABASE_URL, settings.DATABASE_PASSWORD)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        # Store calls run in worker threads
        connect_args["check_same_thread"] = False
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def get_session_factory() -> sessionmaker:
    """Session factory bound to the shared engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
