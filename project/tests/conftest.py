# tests/conftest.py

import os
import tempfile

# settings are read on import of app.config
os.environ.setdefault("AUTH_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="storefront-log-"))
os.environ["LOG_PRINT"] = "0"
os.environ["ORDER_STRICT_TRANSITIONS"] = "1"

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app as fastapi_app
from app.models.user import User
from app.routes.auth import token_for
from app.schemas.user import Actor
from app.services.order import open_order
from app.utils.database import init_db
from app.utils.log import Log


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, email, name, order):
        if self.fail:
            raise RuntimeError("mail gateway down")
        self.sent.append((email, order.order_number))
        return True


class RecordingRegistrar:
    def __init__(self, fail: bool = False, tracking_number: str = "AWB123456"):
        self.fail = fail
        self.tracking_number = tracking_number
        self.created = []

    async def create(self, order, address):
        if self.fail:
            raise RuntimeError("carrier unreachable")
        self.created.append(order.order_number)
        return {"trackingNumber": self.tracking_number, "carrier": "delhivery"}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await init_db(bind=engine, session_factory=factory)
    return factory


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def log(tmp_path):
    log = Log(log_dir=str(tmp_path / "log"), log_print=False)
    yield log
    await log.shutdown()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def registrar():
    return RecordingRegistrar()


@pytest.fixture
async def client(session_factory, log, notifier, registrar):
    # ASGITransport does not run the lifespan, state is wired by hand
    fastapi_app.state.session_factory = session_factory
    fastapi_app.state.log = log
    fastapi_app.state.notifier = notifier
    fastapi_app.state.registrar = registrar
    transport = httpx.ASGITransport(app=fastapi_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_user(db):
    async def factory(email: str, role: str = "customer", **fields) -> User:
        user = User(name=fields.pop("name", email.split("@")[0]), email=email, role=role, **fields)
        db.add(user)
        await db.commit()
        return user
    return factory


@pytest.fixture
async def admin(db):
    result = await db.execute(select(User).where(User.role == "admin"))
    return result.scalar_one()


@pytest.fixture
def make_order(db, log):
    async def factory(customer: User, seller: User | None = None, price: float = 250.0, quantity: int = 2, **kwargs):
        order = await open_order(
            db,
            log,
            customer.id,
            [{"name": "Cotton kurta", "quantity": quantity, "price": price, "product_id": "SKU-1",
              "seller_id": seller.id if seller else None}],
            shipping_address={"name": customer.name, "city": "Mumbai", "pincode": "400001"},
            **kwargs,
        )
        await db.commit()
        return order
    return factory


def actor_of(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}
