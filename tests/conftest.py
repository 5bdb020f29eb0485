import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.availability import AvailableSlot  # noqa: E402
from backend.models.booking_configuration import BookingConfiguration  # noqa: E402
from backend.models.user import User  # noqa: E402
from backend.services import configuration  # noqa: E402

TABLES = [User.__table__, Appointment.__table__, AvailableSlot.__table__, BookingConfiguration.__table__]


@pytest.fixture
def db():
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


@pytest.fixture(autouse=True)
def reset_configuration_cache():
    configuration.invalidate_cache()
    yield
    configuration.invalidate_cache()


def _make_user(db, username: str, *, is_admin: bool = False, blocked_until: datetime | None = None) -> User:
    user = User(
        username=username,
        password_hash='not-a-real-hash',
        name=username.title(),
        email=f'{username}@example.com',
        mobile=None,
        address='1 Star Lane',
        is_admin=is_admin,
        blocked_until=blocked_until,
        created_at=datetime(2025, 12, 1),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _make_slot(db, instant: datetime, enabled: bool = True) -> AvailableSlot:
    slot = AvailableSlot(date=instant, is_enabled=enabled)
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


@pytest.fixture
def make_user(db):
    def factory(username: str, **kwargs) -> User:
        return _make_user(db, username, **kwargs)

    return factory


@pytest.fixture
def make_slot(db):
    def factory(instant: datetime, enabled: bool = True) -> AvailableSlot:
        return _make_slot(db, instant, enabled)

    return factory


@pytest.fixture
def user(make_user) -> User:
    return make_user('seeker')


@pytest.fixture
def admin(make_user) -> User:
    return make_user('admin', is_admin=True)
