import logging
import random
import time
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select

from food_order.application.cache_keys import (
    invalidate_after_order_changed,
    invalidate_after_order_created,
)
from food_order.application.cart_service import clear_cart_lines, load_cart_lines
from food_order.core.config import settings
from food_order.core.errors import (
    ConflictWrite,
    EmptyCart,
    InvalidState,
    InvalidTransition,
    ItemUnavailable,
    MixedRestaurant,
    NotFound,
    ValidationFailed,
)
from food_order.domain.enums import OrderStatus, PaymentMethodType, PaymentStatus
from food_order.domain.models import Address, Order, OrderItem, OrderTracking, utcnow
from food_order.domain.pricing import OrderTotals
from food_order.domain.state_machine import CANCELLABLE, can_transition, milestone_field
from food_order.infrastructure.database import retry_on_conflict, unit_of_work
from food_order.interfaces.ICache import ICache
from food_order.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)

ORDER_PLACED_MESSAGE = "Order placed successfully"
MAX_PAGE_SIZE = 100


def generate_order_number() -> str:
    """ORD + last 8 digits of the millisecond clock + 3 random digits."""
    millis = str(time.time_ns() // 1_000_000)[-8:]
    return f"ORD{millis}{random.randint(0, 999):03d}"


class OrderEngine:
    """
    Turns carts into orders and drives every order through the status state
    machine. Each public write is one transaction; the response cache is
    invalidated only after it commits.
    """

    def __init__(
        self,
        order_repo: IOrderRepository,
        cache: ICache,
        session_factory=None,
        tax_rate: Optional[float] = None,
        delivery_buffer_minutes: Optional[int] = None,
        clock=utcnow,
    ):
        self.order_repo = order_repo
        self.cache = cache
        self.session_factory = session_factory
        self.tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
        self.delivery_buffer_minutes = (
            settings.DELIVERY_BUFFER_MINUTES if delivery_buffer_minutes is None else delivery_buffer_minutes
        )
        self.clock = clock

    # ---------------------------------------------------------
    # CREATE
    # ---------------------------------------------------------

    def create_order(
        self,
        user_id: str,
        address_id: int,
        payment_method: PaymentMethodType,
        instructions: Optional[str] = None,
    ) -> Order:
        payment_method = _parse_enum(PaymentMethodType, payment_method, "payment method")

        with unit_of_work(self.session_factory) as session:
            # 1. Cart
            lines = load_cart_lines(session, user_id)
            if not lines:
                raise EmptyCart("Cart is empty")

            # 2. Single restaurant
            restaurant_ids = {line.menu_item.restaurant_id for line in lines}
            if len(restaurant_ids) > 1:
                raise MixedRestaurant("Cannot create order with items from multiple restaurants")
            restaurant = lines[0].menu_item.restaurant

            stale = [line.menu_item.name for line in lines if not line.menu_item.is_orderable]
            if stale:
                raise ItemUnavailable(f"No longer available: {', '.join(stale)}")

            # 3. Address ownership
            address = session.scalars(
                select(Address).where(Address.id == address_id, Address.user_id == user_id)
            ).first()
            if not address:
                raise NotFound("Address not found")

            # 4-5. Prices are frozen here
            totals = OrderTotals.compute(
                ((line.menu_item.current_price, line.quantity) for line in lines),
                delivery_fee=restaurant.delivery_fee,
                tax_rate=self.tax_rate,
            )
            now = self.clock()

            # 6. Order + items + first tracking event + empty cart, all in this transaction
            order = Order(
                totals=totals,
                order_number=self._new_order_number(session),
                user_id=user_id,
                restaurant=restaurant,
                address_id=address.id,
                status=OrderStatus.PENDING,
                payment_method=payment_method,
                payment_status=PaymentStatus.PENDING,
                special_instructions=instructions,
                estimated_delivery_time=now + timedelta(
                    minutes=restaurant.preparation_time + self.delivery_buffer_minutes
                ),
            )
            for line in lines:
                order.items.append(
                    OrderItem(
                        menu_item=line.menu_item,
                        quantity=line.quantity,
                        price=line.menu_item.current_price,
                        special_instructions=line.special_instructions,
                    )
                )
            order.tracking.append(OrderTracking(status=OrderStatus.PENDING, message=ORDER_PLACED_MESSAGE))
            self.order_repo.add(session, order)
            clear_cart_lines(session, user_id)

        logger.info(f"✅ Order created: {order.order_number} by user {user_id} (total {order.total})")

        # 7. Cache
        invalidate_after_order_created(self.cache, user_id)
        return order

    def _new_order_number(self, session) -> str:
        for _ in range(5):
            candidate = generate_order_number()
            if not self.order_repo.order_number_exists(session, candidate):
                return candidate
        raise ConflictWrite("Could not allocate a unique order number. Please retry.")

    # ---------------------------------------------------------
    # TRANSITIONS
    # ---------------------------------------------------------

    def update_status(self, order_id: int, new_status: OrderStatus, message: Optional[str] = None) -> Order:
        """Move an order along the state machine, stamping the milestone and appending a tracking event."""
        new_status = _parse_enum(OrderStatus, new_status, "order status")

        def transition() -> Order:
            with unit_of_work(self.session_factory) as session:
                # Status is re-read under lock so a concurrent transition can't be lost.
                order = self.order_repo.get(session, order_id, for_update=True)
                if not order:
                    raise NotFound("Order not found")
                if not can_transition(order.status, new_status):
                    raise InvalidTransition(
                        f"Cannot change order status from {order.status.value} to {new_status.value}"
                    )

                now = self.clock()
                order.status = new_status
                setattr(order, milestone_field(new_status), now)
                if new_status == OrderStatus.DELIVERED:
                    order.payment_status = PaymentStatus.PAID

                session.add(
                    OrderTracking(
                        order_id=order.id,
                        status=new_status,
                        message=message or f"Order status updated to {new_status.value}",
                    )
                )
                session.flush()
                return order

        order = retry_on_conflict(transition)
        logger.info(f"Order {order.order_number} status updated to {new_status.value}")
        invalidate_after_order_changed(self.cache, order.user_id)
        return order

    def cancel(self, order_id: int, user_id: str, reason: str) -> Order:
        """Customer cancellation. Only the owner, and only before preparation starts."""

        def do_cancel() -> Order:
            with unit_of_work(self.session_factory) as session:
                order = self.order_repo.get_for_user(session, order_id, user_id, for_update=True)
                if not order:
                    raise NotFound("Order not found")
                if order.status not in CANCELLABLE:
                    raise InvalidState("Order cannot be cancelled at this stage")

                order.status = OrderStatus.CANCELLED
                order.cancelled_at = self.clock()
                order.cancel_reason = reason
                session.add(
                    OrderTracking(
                        order_id=order.id,
                        status=OrderStatus.CANCELLED,
                        message=f"Order cancelled by customer. Reason: {reason}",
                    )
                )
                session.flush()
                # No stock reservations are kept yet; the release is only recorded.
                logger.info(f"Order {order.id} cancelled - {len(order.items)} items released back to inventory")
                return order

        order = retry_on_conflict(do_cancel)
        logger.info(f"Order {order.order_number} cancelled by user {user_id}")
        invalidate_after_order_changed(self.cache, user_id)
        return order

    # ---------------------------------------------------------
    # READS
    # ---------------------------------------------------------

    def get_order(self, order_id: int, user_id: str) -> Order:
        with unit_of_work(self.session_factory) as session:
            order = self.order_repo.get_for_user(session, order_id, user_id)
            if not order:
                raise NotFound("Order not found")
            order.tracking  # load history while the session is open
            return order

    def get_tracking(self, order_id: int, user_id: str) -> Dict[str, Any]:
        """Current status plus the full tracking history, newest first."""
        with unit_of_work(self.session_factory) as session:
            order = self.order_repo.get_for_user(session, order_id, user_id)
            if not order:
                raise NotFound("Order not found")
            events = self.order_repo.tracking(session, order.id)
            return {
                "order": {"id": order.id, "order_number": order.order_number, "status": order.status},
                "tracking": events,
            }

    def list_orders(
        self, user_id: str, page: int = 1, limit: int = 10, status: Optional[OrderStatus] = None
    ) -> Dict[str, Any]:
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationFailed(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}")
        if status is not None:
            status = _parse_enum(OrderStatus, status, "order status")

        with unit_of_work(self.session_factory) as session:
            orders, total = self.order_repo.list_for_user(session, user_id, page, limit, status)

        total_pages = (total + limit - 1) // limit
        logger.info(f"Retrieved {len(orders)} orders for user {user_id} (page {page}/{total_pages})")
        return {
            "data": orders,
            "pagination": {"page": page, "limit": limit, "total": total, "total_pages": total_pages},
        }


def _parse_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailed(f"Invalid {label} '{value}'. Expected one of: {allowed}") from None
