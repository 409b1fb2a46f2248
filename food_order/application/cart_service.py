import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from food_order.core.errors import ItemUnavailable, NotFound, ValidationFailed
from food_order.domain.enums import MenuItemStatus
from food_order.domain.models import Cart, CartItem, MenuItem
from food_order.infrastructure.database import retry_on_conflict, unit_of_work

logger = logging.getLogger(__name__)


class CartStore:
    """
    A user's in-progress selections before ordering.

    Cart reads always use live menu prices and are never cached, so nothing
    here talks to the response cache.
    """

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    # --- WRITES ---

    def add_item(
        self, user_id: str, menu_item_id: int, quantity: int = 1, instructions: Optional[str] = None
    ) -> CartItem:
        """Add a menu item, merging into the existing line for the same item."""
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")
        # Two concurrent first-adds race on the unique (cart, item) line; the loser retries and merges.
        return retry_on_conflict(lambda: self._add_item(user_id, menu_item_id, quantity, instructions))

    def _add_item(self, user_id, menu_item_id, quantity, instructions) -> CartItem:
        with unit_of_work(self.session_factory) as session:
            menu_item = session.scalars(
                select(MenuItem).where(MenuItem.id == menu_item_id).options(joinedload(MenuItem.restaurant))
            ).first()
            if not menu_item:
                raise NotFound("Menu item not found")
            if menu_item.status != MenuItemStatus.AVAILABLE:
                raise ItemUnavailable("This menu item is currently unavailable")
            if not menu_item.restaurant.is_open:
                raise ItemUnavailable(f"{menu_item.restaurant.name} is currently closed")

            cart = self._get_or_create_cart(session, user_id)
            line = session.scalars(
                select(CartItem)
                .where(CartItem.cart_id == cart.id, CartItem.menu_item_id == menu_item_id)
                .options(joinedload(CartItem.menu_item))
            ).first()

            if line:
                line.quantity += quantity
                if instructions:
                    line.special_instructions = instructions
                logger.info(f"Updated cart line for user {user_id}: item {menu_item_id} (qty {line.quantity})")
            else:
                line = CartItem(
                    cart_id=cart.id,
                    menu_item=menu_item,
                    quantity=quantity,
                    special_instructions=instructions,
                )
                session.add(line)
                logger.info(f"Added item to cart for user {user_id}: item {menu_item_id} (qty {quantity})")
            session.flush()
            return line

    def update_quantity(self, user_id: str, line_id: int, quantity: int) -> CartItem:
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")
        with unit_of_work(self.session_factory) as session:
            line = self._owned_line(session, user_id, line_id)
            if not line:
                raise NotFound("Cart item not found")
            line.quantity = quantity
            session.flush()
            logger.info(f"Updated cart item {line_id} quantity to {quantity} for user {user_id}")
            return line

    def remove_item(self, user_id: str, line_id: int) -> bool:
        """Delete one line. Removing a line that is already gone is not an error."""
        with unit_of_work(self.session_factory) as session:
            line = self._owned_line(session, user_id, line_id)
            if not line:
                return False
            session.delete(line)
            logger.info(f"Removed cart item {line_id} for user {user_id}")
            return True

    def clear(self, user_id: str) -> int:
        with unit_of_work(self.session_factory) as session:
            removed = clear_cart_lines(session, user_id)
            logger.info(f"Cleared cart for user {user_id}: {removed} items removed")
            return removed

    # --- READS ---

    def get_cart(self, user_id: str) -> Dict[str, Any]:
        """Lines joined with live menu data, plus a computed summary."""
        with unit_of_work(self.session_factory) as session:
            lines = load_cart_lines(session, user_id)
            subtotal = round(sum(line.line_total for line in lines), 2)
            delivery_fee = lines[0].menu_item.restaurant.delivery_fee if lines else 0.0
            logger.info(f"Retrieved cart for user {user_id}: {len(lines)} items")
            return {
                "items": lines,
                "summary": {
                    "item_count": len(lines),
                    "total_quantity": sum(line.quantity for line in lines),
                    "subtotal": subtotal,
                    "delivery_fee": delivery_fee,
                    "total": round(subtotal + delivery_fee, 2),
                },
            }

    def count(self, user_id: str) -> int:
        with unit_of_work(self.session_factory) as session:
            return session.scalar(
                select(func.count(CartItem.id)).select_from(CartItem).join(Cart).where(Cart.user_id == user_id)
            ) or 0

    # --- HELPERS ---

    def _get_or_create_cart(self, session: Session, user_id: str) -> Cart:
        cart = session.scalars(select(Cart).where(Cart.user_id == user_id)).first()
        if not cart:
            cart = Cart(user_id=user_id)
            session.add(cart)
            session.flush()
            logger.info(f"Created new cart for user: {user_id}")
        return cart

    def _owned_line(self, session: Session, user_id: str, line_id: int) -> Optional[CartItem]:
        return session.scalars(
            select(CartItem)
            .join(Cart)
            .where(CartItem.id == line_id, Cart.user_id == user_id)
            .options(joinedload(CartItem.menu_item).joinedload(MenuItem.restaurant))
        ).first()


def load_cart_lines(session: Session, user_id: str) -> List[CartItem]:
    """The user's cart lines with menu item and restaurant loaded, oldest first."""
    return list(
        session.scalars(
            select(CartItem)
            .join(Cart)
            .where(Cart.user_id == user_id)
            .options(joinedload(CartItem.menu_item).joinedload(MenuItem.restaurant))
            .order_by(CartItem.created_at, CartItem.id)
        ).unique().all()
    )


def clear_cart_lines(session: Session, user_id: str) -> int:
    cart_ids = select(Cart.id).where(Cart.user_id == user_id)
    result = session.execute(
        delete(CartItem).where(CartItem.cart_id.in_(cart_ids)).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
