import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from courtbook.core.auth import ActorContext, RoleGrant
from courtbook.core.clock import FixedClock
from courtbook.db.session import Base
from courtbook.db import models
from courtbook.services.booking_service import BookingController
from courtbook.services.notification_service import BookingEventPublisher

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def enable_sqlite_transactions(engine, begin_statement="BEGIN"):
    """Let SQLAlchemy own BEGIN/SAVEPOINT on pysqlite connections."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql(begin_statement)

    return engine


class RecordingSink:
    def __init__(self, fail_for=()):
        self.events = []
        self.fail_for = set(fail_for)

    def notify_booking_event(self, notification):
        if notification.booking_id in self.fail_for:
            raise RuntimeError("mail relay down")
        self.events.append(notification)

    def kinds(self):
        return [(event.kind, event.audience) for event in self.events]


@pytest.fixture()
def db_session():
    engine = enable_sqlite_transactions(create_engine("sqlite+pysqlite:///:memory:", future=True))
    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def clock():
    return FixedClock(NOW)


@pytest.fixture()
def controller(sink, clock):
    return BookingController(publisher=BookingEventPublisher(sink), clock=clock)


@pytest.fixture()
def court(db_session):
    """A tenant with one auto-confirming branch holding one court."""
    tenant = models.Tenant(name="Club", slug="club")
    branch = models.Branch(
        tenant=tenant, name="Centro", timezone="UTC", requires_approval=False, is_active=True
    )
    resource = models.Resource(
        branch=branch, name="Court 1", price_per_hour=Decimal("20000"), currency="CLP", is_active=True
    )
    db_session.add_all([tenant, branch, resource])
    db_session.commit()
    return resource


def create_user(session, email="player@example.com", first_name="Ana", last_name="Rojas"):
    user = models.User(email=email, first_name=first_name, last_name=last_name)
    session.add(user)
    session.commit()
    return user


def branch_admin(session, branch, email="admin@example.com"):
    user = create_user(session, email=email, first_name="Admin", last_name="Club")
    session.add(models.UserRole(user_id=user.id, role=models.RoleName.branch_admin, branch_id=branch.id))
    session.commit()
    return ActorContext(
        user_id=user.id,
        grants=(RoleGrant(role=models.RoleName.branch_admin, branch_id=branch.id),),
    )


def as_actor(user):
    return ActorContext(user_id=user.id)
