from typing import Optional

from fastapi import APIRouter, Depends, Query

from food_order.application import cache_keys
from food_order.application.order_engine import OrderEngine
from food_order.domain.enums import OrderStatus
from food_order.interfaces.ICache import ICache
from food_order.interfaces.dependencies import get_cache, get_current_user_id, get_order_engine
from food_order.interfaces.schemas import (
    CancelOrderIn,
    CreateOrderIn,
    OrderDetailOut,
    OrderOut,
    OrderPageOut,
    TrackingOut,
    UpdateStatusIn,
)

router = APIRouter(prefix="/orders", tags=["orders"])

DETAIL_TRACKING_LIMIT = 10


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: CreateOrderIn,
    user_id: str = Depends(get_current_user_id),
    engine: OrderEngine = Depends(get_order_engine),
):
    return engine.create_order(user_id, payload.address_id, payload.payment_method, payload.special_instructions)


@router.get("", response_model=OrderPageOut)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    user_id: str = Depends(get_current_user_id),
    engine: OrderEngine = Depends(get_order_engine),
    cache: ICache = Depends(get_cache),
):
    key = cache_keys.key_for(
        cache_keys.ORDERS, user_id, {"view": "list", "page": page, "limit": limit, "status": status}
    )
    return cache_keys.cached_read(
        cache,
        key,
        lambda: OrderPageOut.model_validate(engine.list_orders(user_id, page, limit, status)).model_dump(mode="json"),
    )


@router.get("/{order_id}", response_model=OrderDetailOut)
def get_order(
    order_id: int,
    user_id: str = Depends(get_current_user_id),
    engine: OrderEngine = Depends(get_order_engine),
    cache: ICache = Depends(get_cache),
):
    def load():
        order = engine.get_order(order_id, user_id)
        detail = OrderDetailOut.model_validate(order)
        detail.tracking = detail.tracking[:DETAIL_TRACKING_LIMIT]
        return detail.model_dump(mode="json")

    key = cache_keys.key_for(cache_keys.ORDERS, user_id, {"view": "detail", "order": order_id})
    return cache_keys.cached_read(cache, key, load)


@router.put("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: UpdateStatusIn,
    user_id: str = Depends(get_current_user_id),
    engine: OrderEngine = Depends(get_order_engine),
):
    # Restaurant/admin facing; role checks belong to the gateway.
    return engine.update_status(order_id, payload.status, payload.message)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    payload: CancelOrderIn,
    user_id: str = Depends(get_current_user_id),
    engine: OrderEngine = Depends(get_order_engine),
):
    return engine.cancel(order_id, user_id, payload.reason)


@router.get("/{order_id}/tracking", response_model=TrackingOut)
def get_order_tracking(
    order_id: int,
    user_id: str = Depends(get_current_user_id),
    engine: OrderEngine = Depends(get_order_engine),
    cache: ICache = Depends(get_cache),
):
    key = cache_keys.key_for(cache_keys.ORDERS, user_id, {"view": "tracking", "order": order_id})
    return cache_keys.cached_read(
        cache, key, lambda: TrackingOut.model_validate(engine.get_tracking(order_id, user_id)).model_dump(mode="json")
    )
