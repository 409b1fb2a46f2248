from fastapi import APIRouter, Depends

from food_order.application.cart_service import CartStore
from food_order.interfaces.dependencies import get_cart_store, get_current_user_id
from food_order.interfaces.schemas import AddCartItemIn, CartLineOut, CartOut, UpdateCartItemIn

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(user_id: str = Depends(get_current_user_id), carts: CartStore = Depends(get_cart_store)):
    return carts.get_cart(user_id)


@router.get("/count")
def get_cart_count(user_id: str = Depends(get_current_user_id), carts: CartStore = Depends(get_cart_store)):
    return {"count": carts.count(user_id)}


@router.post("", response_model=CartLineOut, status_code=201)
def add_to_cart(
    payload: AddCartItemIn,
    user_id: str = Depends(get_current_user_id),
    carts: CartStore = Depends(get_cart_store),
):
    return carts.add_item(user_id, payload.menu_item_id, payload.quantity, payload.special_instructions)


@router.put("/{line_id}", response_model=CartLineOut)
def update_cart_item(
    line_id: int,
    payload: UpdateCartItemIn,
    user_id: str = Depends(get_current_user_id),
    carts: CartStore = Depends(get_cart_store),
):
    return carts.update_quantity(user_id, line_id, payload.quantity)


@router.delete("/{line_id}")
def remove_from_cart(line_id: int, user_id: str = Depends(get_current_user_id), carts: CartStore = Depends(get_cart_store)):
    removed = carts.remove_item(user_id, line_id)
    return {"success": True, "removed": removed}


@router.delete("")
def clear_cart(user_id: str = Depends(get_current_user_id), carts: CartStore = Depends(get_cart_store)):
    return {"success": True, "items_removed": carts.clear(user_id)}
