from datetime import datetime

import pytz
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from food_order.domain.enums import (
    AddressType,
    MenuItemStatus,
    OrderStatus,
    PaymentMethodType,
    PaymentStatus,
)
from food_order.domain.pricing import OrderTotals, effective_price
from food_order.infrastructure.database import Base


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


def _enum(enum_cls):
    # Stored as plain strings so the schema stays portable across backends.
    return Enum(enum_cls, native_enum=False, length=32, validate_strings=True)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


# ---------------------------------------------------------
# CATALOG (owned by the restaurant side, read by the core)
# ---------------------------------------------------------

class Restaurant(TimestampMixin, Base):
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    is_open = Column(Boolean, default=True, nullable=False)
    delivery_fee = Column(Float, default=0.0, nullable=False)
    preparation_time = Column(Integer, default=20, nullable=False)  # minutes
    min_order_amount = Column(Float, default=0.0, nullable=False)

    # Derived from reviews, written only by the rating aggregator.
    rating = Column(Float, default=0.0, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)

    menu_items = relationship("MenuItem", back_populates="restaurant")


class MenuItem(TimestampMixin, Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    discount_price = Column(Float, nullable=True)
    status = Column(_enum(MenuItemStatus), default=MenuItemStatus.AVAILABLE, nullable=False)

    restaurant = relationship("Restaurant", back_populates="menu_items")

    @property
    def current_price(self) -> float:
        return effective_price(self.price, self.discount_price)

    @property
    def is_orderable(self) -> bool:
        return self.status == MenuItemStatus.AVAILABLE and bool(self.restaurant and self.restaurant.is_open)


# ---------------------------------------------------------
# CART
# ---------------------------------------------------------

class Cart(TimestampMixin, Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, nullable=False, index=True)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )


class CartItem(TimestampMixin, Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "menu_item_id", name="uq_cart_items_cart_menu_item"),)

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    special_instructions = Column(Text, nullable=True)

    cart = relationship("Cart", back_populates="items")
    menu_item = relationship("MenuItem")

    @property
    def line_total(self) -> float:
        return round(self.menu_item.current_price * self.quantity, 2)


# ---------------------------------------------------------
# ORDERS
# ---------------------------------------------------------

class Order(TimestampMixin, Base):
    """
    A placed purchase. Everything except status-governed fields is fixed at
    creation; the money breakdown can only be set from an OrderTotals value.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False)
    address_id = Column(Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    driver_id = Column(String(64), nullable=True)

    _subtotal = Column("subtotal", Float, nullable=False)
    _delivery_fee = Column("delivery_fee", Float, nullable=False)
    _tax = Column("tax", Float, nullable=False)
    _discount = Column("discount", Float, nullable=False, default=0.0)
    _total = Column("total", Float, nullable=False)

    status = Column(_enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_method = Column(_enum(PaymentMethodType), nullable=False)
    payment_status = Column(_enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)

    special_instructions = Column(Text, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    estimated_delivery_time = Column(DateTime(timezone=True), nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    preparing_at = Column(DateTime(timezone=True), nullable=True)
    ready_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Bumped on every UPDATE; a concurrent writer holding an old value fails with StaleDataError.
    version = Column(Integer, nullable=False)

    restaurant = relationship("Restaurant")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    tracking = relationship(
        "OrderTracking",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by=lambda: [OrderTracking.created_at.desc(), OrderTracking.id.desc()],
    )

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, *, totals: OrderTotals, **kwargs):
        super().__init__(**kwargs)
        self._subtotal = totals.subtotal
        self._delivery_fee = totals.delivery_fee
        self._tax = totals.tax
        self._discount = totals.discount
        self._total = totals.total

    @property
    def subtotal(self) -> float:
        return self._subtotal

    @property
    def delivery_fee(self) -> float:
        return self._delivery_fee

    @property
    def tax(self) -> float:
        return self._tax

    @property
    def discount(self) -> float:
        return self._discount

    @property
    def total(self) -> float:
        return self._total

    @property
    def totals(self) -> OrderTotals:
        return OrderTotals(
            subtotal=self._subtotal,
            delivery_fee=self._delivery_fee,
            tax=self._tax,
            discount=self._discount,
        )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)  # unit price frozen at order time
    special_instructions = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem")


class OrderTracking(Base):
    """Append-only status history. Rows are never updated or deleted."""
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(_enum(OrderStatus), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="tracking")


# ---------------------------------------------------------
# DEFAULT-ABLE ENTITIES (at most one default per user)
# ---------------------------------------------------------

class DefaultableMixin(TimestampMixin):
    """Owner and default flag shared by every per-user collection with a default."""

    # Columns the owner may set through create/update.
    payload_fields: tuple = ()

    user_id = Column(String(64), nullable=False, index=True)
    is_default = Column(Boolean, default=False, nullable=False)


def _one_default_per_user(table: str) -> Index:
    return Index(
        f"uq_{table}_user_default",
        "user_id",
        unique=True,
        sqlite_where=text("is_default = 1"),
        postgresql_where=text("is_default"),
    )


class Address(DefaultableMixin, Base):
    __tablename__ = "addresses"
    __table_args__ = (_one_default_per_user("addresses"),)

    payload_fields = ("type", "label", "full_address", "latitude", "longitude")

    id = Column(Integer, primary_key=True, index=True)
    type = Column(_enum(AddressType), default=AddressType.HOME, nullable=False)
    label = Column(String(255), nullable=True)
    full_address = Column(Text, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)


class PaymentMethod(DefaultableMixin, Base):
    __tablename__ = "payment_methods"
    __table_args__ = (_one_default_per_user("payment_methods"),)

    payload_fields = ("type", "card_number", "card_holder", "expiry_date", "phone_number")

    id = Column(Integer, primary_key=True, index=True)
    type = Column(_enum(PaymentMethodType), nullable=False)
    card_number = Column(String(32), nullable=True)
    card_holder = Column(String(255), nullable=True)
    expiry_date = Column(String(8), nullable=True)
    phone_number = Column(String(32), nullable=True)


# ---------------------------------------------------------
# REVIEWS
# ---------------------------------------------------------

class Review(TimestampMixin, Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    images = Column(JSON, default=list, nullable=False)

    restaurant = relationship("Restaurant")
