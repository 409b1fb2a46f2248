from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from food_order.application import cache_keys
from food_order.application.cart_service import CartStore
from food_order.application.exclusivity import DefaultableCollection
from food_order.application.order_engine import OrderEngine
from food_order.application.review_service import ReviewService
from food_order.domain.enums import MenuItemStatus
from food_order.domain.models import Address, MenuItem, PaymentMethod, Restaurant
from food_order.infrastructure.cache import MemoryResponseCache
from food_order.infrastructure.database import Base, make_session_factory
from food_order.infrastructure.repositories.order_repository import SqlOrderRepository
from food_order.main import create_app

USER = "user-1"
OTHER_USER = "user-2"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryResponseCache(default_ttl=300, sweep_interval=0.05, clock=clock)


@pytest.fixture
def catalog(session_factory):
    """Two open restaurants, one closed one, and a mix of item states."""
    session = session_factory()
    pho = Restaurant(name="Pho Corner", delivery_fee=2.5, preparation_time=20)
    pizza = Restaurant(name="Pizza Place", delivery_fee=3.0, preparation_time=25)
    closed = Restaurant(name="Night Kitchen", is_open=False, delivery_fee=1.0)
    session.add_all([pho, pizza, closed])
    session.flush()

    items = {
        "pho": MenuItem(restaurant_id=pho.id, name="Beef Pho", price=10.0),
        "spring_rolls": MenuItem(restaurant_id=pho.id, name="Spring Rolls", price=4.0, discount_price=3.0),
        "sold_out": MenuItem(
            restaurant_id=pho.id, name="Special", price=8.0, status=MenuItemStatus.OUT_OF_STOCK
        ),
        "margherita": MenuItem(restaurant_id=pizza.id, name="Margherita", price=12.0),
        "soup": MenuItem(restaurant_id=closed.id, name="Soup", price=5.0),
    }
    session.add_all(items.values())
    session.commit()

    ns = SimpleNamespace(pho_restaurant=pho.id, pizza_restaurant=pizza.id, closed_restaurant=closed.id)
    for name, item in items.items():
        setattr(ns, name, item.id)
    session.close()
    return ns


@pytest.fixture
def cart_store(session_factory):
    return CartStore(session_factory=session_factory)


@pytest.fixture
def order_engine(session_factory, cache):
    return OrderEngine(SqlOrderRepository(), cache, session_factory=session_factory, tax_rate=0.10)


@pytest.fixture
def addresses(session_factory, cache):
    return DefaultableCollection(Address, cache, cache_keys.ADDRESSES, "Address", session_factory=session_factory)


@pytest.fixture
def payment_methods(session_factory, cache):
    return DefaultableCollection(
        PaymentMethod, cache, cache_keys.PAYMENT_METHODS, "Payment method", session_factory=session_factory
    )


@pytest.fixture
def review_service(session_factory, cache):
    return ReviewService(cache, session_factory=session_factory)


@pytest.fixture
def home_address(addresses):
    return addresses.create(USER, {"full_address": "12 Ly Thuong Kiet, Hanoi", "label": "Home"})


@pytest.fixture
def place_order(cart_store, order_engine, home_address, catalog):
    """Fill the cart with one item and turn it into an order."""

    def _place(menu_item_id=None, quantity=1, user_id=USER, address_id=None):
        cart_store.add_item(user_id, menu_item_id or catalog.pho, quantity)
        return order_engine.create_order(user_id, address_id or home_address.id, "CASH")

    return _place


@pytest.fixture
def client(engine, session_factory, cache, catalog):
    app = create_app(session_factory=session_factory, cache=cache, engine=engine)
    with TestClient(app) as test_client:
        yield test_client


def auth(user_id: str = USER) -> dict:
    return {"X-User-Id": user_id}
