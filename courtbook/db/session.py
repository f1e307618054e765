from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from ..config import get_settings

settings = get_settings()

engine = create_engine(settings.sqlalchemy_url, future=True, echo=False)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
Base = declarative_base()


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run a unit of work that is committed as a whole or not at all.

    A session that already holds an open transaction (for example because the
    caller loaded rows first) gets a savepoint that is committed together with
    the outer transaction on success. On failure only the savepoint is rolled
    back, so none of the unit's writes survive.
    """
    if db.in_transaction():
        with db.begin_nested():
            yield db
        db.commit()
    else:
        with db.begin():
            yield db
