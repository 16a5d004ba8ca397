# tests/conftest.py
import itertools
import os

# до импорта wellgroups: db.py и identity.py читают окружение при импорте
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.pop("ACTIVITY_SERVICE_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from wellgroups.db import Base, get_db, make_engine
from wellgroups.models.user import User
from wellgroups.schemas.group import GroupCreate
from wellgroups.services import group_membership
from wellgroups.services.activity_signals import StaticActivitySignals, get_signal_source
from wellgroups.utils.identity import get_current_user


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'wellgroups.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name=None):
        n = next(counter)
        display = name or f"User {n}"
        user = User(telegram_id=100000 + n, first_name=display, name=display)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def signals():
    return StaticActivitySignals()


@pytest.fixture
def eligible(signals):
    def _mark(user):
        signals.set(user.id, days_active=7, modules=8)
        return user

    return _mark


@pytest.fixture
def make_group(db, signals, eligible):
    """Группа с указанным спонсором (спонсор автоматически получает допуск)."""

    def _make(sponsor, name="Morning Walkers", description="We walk every morning together"):
        eligible(sponsor)
        return group_membership.create_group(
            db, sponsor.id, GroupCreate(name=name, description=description), signals
        )

    return _make


@pytest.fixture
def fill_group(db):
    """Добавляет участников по инвайт-коду, пока в группе не станет `count` человек."""

    def _fill(group, make_user, count):
        added = []
        for _ in range(count - group.current_member_count):
            user = make_user()
            group_membership.join_group(db, user.id, group.invite_code)
            added.append(user)
        return added

    return _fill


@pytest.fixture
def api(session_factory, signals):
    """
    TestClient с подменой зависимостей: своя БД, сигналы из памяти
    и «текущий пользователь» из client.as_user(user).
    """
    from wellgroups.main import app

    current = {"user_id": None}

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _current_user():
        session = session_factory()
        try:
            user = session.get(User, current["user_id"])
            session.expunge(user)
            return user
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_signal_source] = lambda: signals
    app.dependency_overrides[get_current_user] = _current_user

    client = TestClient(app)

    def as_user(user):
        current["user_id"] = user.id
        return client

    client.as_user = as_user
    yield client
    app.dependency_overrides.clear()
