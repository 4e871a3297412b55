from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from expense_console.models.state import Base


def build_session_factory(database_url: str) -> sessionmaker:
    if not database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    connect_args: dict[str, object] = {}

    if database_url.startswith("sqlite"):
        # FastAPI may run sync state writes in a threadpool, so the connection
        # must be usable across threads.
        connect_args = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def dispose(factory: sessionmaker) -> None:
    bind = factory.kw.get("bind")
    if isinstance(bind, Engine):
        bind.dispose()
