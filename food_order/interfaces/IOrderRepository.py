from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from food_order.domain.enums import OrderStatus
from food_order.domain.models import Order, OrderTracking

class IOrderRepository(ABC):
    """Order persistence. Every method works inside the caller's transaction."""

    @abstractmethod
    def add(self, session: Session, order: Order) -> Order:
        pass

    @abstractmethod
    def get(self, session: Session, order_id: int, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    def get_for_user(self, session: Session, order_id: int, user_id: str, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    def list_for_user(
        self, session: Session, user_id: str, page: int, limit: int, status: Optional[OrderStatus] = None
    ) -> Tuple[List[Order], int]:
        pass

    @abstractmethod
    def tracking(self, session: Session, order_id: int, limit: Optional[int] = None) -> List[OrderTracking]:
        pass

    @abstractmethod
    def order_number_exists(self, session: Session, order_number: str) -> bool:
        pass
