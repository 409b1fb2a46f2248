from typing import Optional

from fastapi import Header, HTTPException, Request

from food_order.application.cart_service import CartStore
from food_order.application.exclusivity import DefaultableCollection
from food_order.application.order_engine import OrderEngine
from food_order.application.review_service import ReviewService
from food_order.interfaces.ICache import ICache


def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """
    The caller's identity. Token checking happens upstream; by the time a
    request reaches the core the gateway has put the user id in this header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


# Services live on app.state, wired by the composition root in main.py.

def get_cart_store(request: Request) -> CartStore:
    return request.app.state.cart_store


def get_order_engine(request: Request) -> OrderEngine:
    return request.app.state.order_engine


def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review_service


def get_cache(request: Request) -> ICache:
    return request.app.state.cache


def collection_dependency(state_attr: str):
    def get_collection(request: Request) -> DefaultableCollection:
        return getattr(request.app.state, state_attr)
    return get_collection
