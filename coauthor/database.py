from sqlmodel import SQLModel, Session, create_engine

from coauthor.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # local runs and the test suite share one connection across threads
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 1800}


engine = create_engine(settings.database_url, echo=False, **_engine_options(settings.database_url))


def create_db_and_tables():
    # importing the package registers every table on SQLModel.metadata
    from coauthor import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
