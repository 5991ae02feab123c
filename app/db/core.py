from app.core.config import settings
from sqlmodel import SQLModel, Session, create_engine


connect_args = {}
if settings.database_url.startswith("sqlite"):
    # Sessions are used from FastAPI's worker threads
    connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    pool_pre_ping=True,
)


def create_db_and_tables():
    # Import registers the table models on SQLModel.metadata
    from app.db import schema  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
