import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from simplechat.core.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)


def init_db(bind: Engine | None = None) -> None:
    """Create missing tables and indexes. Safe to run on every start."""
    import simplechat.models  # noqa: F401 - ensure models are registered

    bind = bind or engine
    SQLModel.metadata.create_all(bind)

    # create_all skips indexes on tables that already exist
    for table in SQLModel.metadata.sorted_tables:
        for index in table.indexes:
            index.create(bind=bind, checkfirst=True)
    logger.debug(f"Database schema ready ({len(SQLModel.metadata.tables)} tables)")


def get_session():
    with Session(engine) as session:
        yield session
