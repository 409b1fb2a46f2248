from typing import List, Optional, Tuple

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, selectinload

from food_order.domain.enums import OrderStatus
from food_order.domain.models import Order, OrderItem, OrderTracking
from food_order.interfaces.IOrderRepository import IOrderRepository

class SqlOrderRepository(IOrderRepository):

    def add(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        return order

    def get(self, session: Session, order_id: int, for_update: bool = False) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items).selectinload(OrderItem.menu_item), selectinload(Order.restaurant))
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalars(stmt).first()

    def get_for_user(self, session: Session, order_id: int, user_id: str, for_update: bool = False) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.id == order_id, Order.user_id == user_id)
            .options(selectinload(Order.items).selectinload(OrderItem.menu_item), selectinload(Order.restaurant))
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalars(stmt).first()

    def list_for_user(
        self, session: Session, user_id: str, page: int, limit: int, status: Optional[OrderStatus] = None
    ) -> Tuple[List[Order], int]:
        """
        Page through a user's orders.
        Ordered by created_at DESC (Newest first).
        """
        where = [Order.user_id == user_id]
        if status is not None:
            where.append(Order.status == status)

        total = session.scalar(select(func.count()).select_from(Order).where(*where))
        orders = session.scalars(
            select(Order)
            .where(*where)
            .options(selectinload(Order.items).selectinload(OrderItem.menu_item), selectinload(Order.restaurant))
            .order_by(desc(Order.created_at), desc(Order.id))
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(orders), total or 0

    def tracking(self, session: Session, order_id: int, limit: Optional[int] = None) -> List[OrderTracking]:
        stmt = (
            select(OrderTracking)
            .where(OrderTracking.order_id == order_id)
            .order_by(desc(OrderTracking.created_at), desc(OrderTracking.id))
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt).all())

    def order_number_exists(self, session: Session, order_number: str) -> bool:
        return session.scalar(select(Order.id).where(Order.order_number == order_number)) is not None
