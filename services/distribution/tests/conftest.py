import os
import tempfile

# Must be set before dms.config / dms.database are imported
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'dms-test.db')}")
os.environ.setdefault("DB_STATEMENT_TIMEOUT_MS", "30000")

from contextlib import asynccontextmanager
from decimal import Decimal
from types import SimpleNamespace

import pytest
from jose import jwt
from sqlalchemy.orm import sessionmaker

from dms import config, models, schemas
from dms.alerts import AlertConfig, AlertConfigHolder
from dms.crud import SqlAlchemyStore
from dms.database import build_engine
from dms.workflow import OrderWorkflow


class RecordingChannel:
    """Notification channel double that records every send."""

    def __init__(self, failing=(), raising=()):
        self.sent = []
        self.failing = set(failing)
        self.raising = set(raising)
        self.connections = 0

    @asynccontextmanager
    async def connect(self):
        self.connections += 1
        yield self

    async def send(self, destination, message):
        if destination in self.raising:
            raise RuntimeError(f"channel down for {destination}")
        self.sent.append((destination, message))
        return destination not in self.failing


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'dms.db'}")
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return SqlAlchemyStore(db)


@pytest.fixture
def catalog(store):
    """One retailer and one product priced 14.00 with 15 in stock, threshold 20."""
    retailer = store.create_retailer(schemas.RetailerCreate(
        name="Supreme Grocers",
        location="Port of Spain",
        contact_number="+1868-555-0101",
        email="orders@supremegrocers.tt",
    ))
    product = store.create_product(schemas.ProductCreate(
        name="Rice Cakes - Original",
        description="Original flavor rice cakes, 24 units per case",
        price_per_unit=Decimal("14.00"),
    ))
    store.set_inventory(product.id, 15)
    return SimpleNamespace(retailer_id=retailer.id, product_id=product.id)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def enabled_config():
    return AlertConfig(enabled=True, recipients=("+18685550001", "+18685550002"))


@pytest.fixture
def holder():
    return AlertConfigHolder(AlertConfig())


@pytest.fixture
def workflow(store, channel, holder):
    return OrderWorkflow(store, channel, alert_config=holder)


def make_token(role="distributor", sub="u-1", email="ops@dms.tt"):
    claims = {"sub": sub, "email": email, "role": role}
    return jwt.encode(claims, config.SECRET_KEY, algorithm=config.JWT_ALGORITHM)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(role='admin')}"}
