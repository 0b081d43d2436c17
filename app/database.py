from contextlib import contextmanager

from sqlmodel import SQLModel, create_engine, Session
from app.config import settings


engine = create_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,      # checks dead connections
    pool_recycle=1800        # refresh every 30 min
)


def create_db_and_tables():
    from app.models import user, address, product, order, order_address, order_item
    SQLModel.metadata.create_all(engine)


@contextmanager
def session_scope():
    # looks the engine up at call time so tests can swap it
    with Session(engine) as session:
        yield session


def get_session():
    with session_scope() as session:
        yield session
