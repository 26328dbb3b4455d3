"""Shared fixtures: an in-memory SQLite store database and a fake Redis."""

import os

# must be set before storefront.db.session builds its engine
os.environ.setdefault("POSTGRES_DSN", "sqlite://")

from decimal import Decimal

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.db.models import Order, OrderItem, OrderStatus, Product
from storefront.db.session import Base
from storefront.sessions.handler import RedisSessionHandler
from storefront.sessions.index import SessionIndex

CACHE_PREFIX = "test-cache"


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
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    yield session
    session.close()


@pytest.fixture
def make_product(db):
    def _make(**overrides) -> Product:
        fields = {
            "name": "osu! t-shirt",
            "cost": Decimal("20.00"),
            "stock": 10,
            "max_quantity": 5,
            "enabled": True,
        }
        fields.update(overrides)
        product = Product(**fields)
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_order(db):
    def _make(*lines, user_id: int = 2, status: OrderStatus = OrderStatus.PENDING) -> Order:
        order = Order(user_id=user_id, status=status)
        for line in lines:
            product, quantity = line[0], line[1]
            extra_data = line[2] if len(line) > 2 else None
            cost = product.cost if product is not None else Decimal("5.00")
            order.items.append(OrderItem(product=product, quantity=quantity, cost=cost, extra_data=extra_data))
        db.add(order)
        db.commit()
        return order

    return _make


@pytest.fixture
def redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def index(redis):
    return SessionIndex(redis, cache_prefix=CACHE_PREFIX, driver="redis")


@pytest.fixture
def handler(redis):
    return RedisSessionHandler(redis, cache_prefix=CACHE_PREFIX, lifetime_minutes=60)
