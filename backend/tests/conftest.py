"""Shared fixtures: an in-memory SQLite database and small record factories."""

import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import bizcontacts.models  # noqa: F401
from bizcontacts.models.base import Base
from bizcontacts.models.business import Business
from bizcontacts.models.dataset import Dataset
from bizcontacts.models.discovery_run import DiscoveryRun
from bizcontacts.models.job_status import RunStatus


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_run(db):
    def _make(status=RunStatus.RUNNING, user_id="user-1"):
        dataset = Dataset(id=uuid.uuid4(), user_id=user_id, name="test", location_key="municipality:1", industry_key="all")
        db.add(dataset)
        run = DiscoveryRun(id=uuid.uuid4(), dataset_id=dataset.id, user_id=user_id, status=status)
        db.add(run)
        db.commit()
        return run
    return _make


@pytest.fixture
def make_business(db):
    def _make(run=None, **fields):
        business = Business(
            id=uuid.uuid4(),
            external_id=fields.pop("external_id", uuid.uuid4().hex),
            name=fields.pop("name", "Καφέ Ωμέγα"),
            municipality_id=fields.pop("municipality_id", 1),
            discovery_run_id=run.id if run else None,
            **fields,
        )
        db.add(business)
        db.commit()
        return business
    return _make
