"""
Shared fixtures: collaborator doubles and a throwaway SQLite database
"""
import os

# Must be set before campusnest is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from campusnest.database import Base
from campusnest.models import Application, User
from tests.fakes import FakeLiveChannel, FakeMessageStore, FakeUserDirectory


@pytest.fixture
def store():
    return FakeMessageStore()


@pytest.fixture
def directory():
    return FakeUserDirectory({
        "alice": "alice@uni.edu",
        "bob": "bob@uni.edu",
        "me": "me@uni.edu",
    })


@pytest.fixture
def live():
    return FakeLiveChannel()


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite so worker threads each get their own connection"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'campusnest-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def seeded(session_factory):
    """Applicant, owner, an unrelated user and one application"""
    with session_factory() as db:
        db.add_all([
            User(id="student-1", email="student@uni.edu", full_name="Sam Student"),
            User(id="owner-1", email="owner@homes.com", full_name="Olive Owner"),
            User(id="outsider", email="outsider@uni.edu"),
        ])
        application = Application(
            listing_id="listing-1",
            applicant_id="student-1",
            owner_id="owner-1",
            message="Hi, is the room still available?",
        )
        db.add(application)
        db.commit()
        db.refresh(application)
        return {"application_id": application.id}
