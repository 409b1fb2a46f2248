from typing import Optional

from fastapi import APIRouter, Depends, Query

from food_order.application import cache_keys
from food_order.application.review_service import ReviewService
from food_order.interfaces.ICache import ICache
from food_order.interfaces.dependencies import get_cache, get_current_user_id, get_review_service
from food_order.interfaces.schemas import ReviewIn, ReviewOut, ReviewPageOut, ReviewUpdateIn

router = APIRouter(tags=["reviews"])


@router.post("/reviews", response_model=ReviewOut, status_code=201)
def create_review(
    payload: ReviewIn,
    user_id: str = Depends(get_current_user_id),
    reviews: ReviewService = Depends(get_review_service),
):
    return reviews.create(user_id, payload.order_id, payload.rating, payload.comment, payload.images)


@router.get("/reviews/my-reviews", response_model=ReviewPageOut)
def list_my_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    reviews: ReviewService = Depends(get_review_service),
    cache: ICache = Depends(get_cache),
):
    key = cache_keys.key_for(cache_keys.USER_REVIEWS, user_id, {"page": page, "limit": limit})
    return cache_keys.cached_read(
        cache,
        key,
        lambda: ReviewPageOut.model_validate(reviews.list_for_user(user_id, page, limit)).model_dump(mode="json"),
    )


@router.get("/reviews/{review_id}", response_model=ReviewOut)
def get_review(
    review_id: int,
    user_id: str = Depends(get_current_user_id),
    reviews: ReviewService = Depends(get_review_service),
):
    return reviews.get(user_id, review_id)


@router.put("/reviews/{review_id}", response_model=ReviewOut)
def update_review(
    review_id: int,
    payload: ReviewUpdateIn,
    user_id: str = Depends(get_current_user_id),
    reviews: ReviewService = Depends(get_review_service),
):
    return reviews.update(user_id, review_id, payload.rating, payload.comment, payload.images)


@router.delete("/reviews/{review_id}")
def delete_review(
    review_id: int,
    user_id: str = Depends(get_current_user_id),
    reviews: ReviewService = Depends(get_review_service),
):
    reviews.delete(user_id, review_id)
    return {"success": True}


@router.get("/restaurants/{restaurant_id}/reviews", response_model=ReviewPageOut)
def list_restaurant_reviews(
    restaurant_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    rating: Optional[int] = Query(None, ge=1, le=5),
    reviews: ReviewService = Depends(get_review_service),
    cache: ICache = Depends(get_cache),
):
    # Public listing; no identity required.
    key = cache_keys.key_for(
        cache_keys.RESTAURANT_REVIEWS, restaurant_id, {"page": page, "limit": limit, "rating": rating}
    )
    return cache_keys.cached_read(
        cache,
        key,
        lambda: ReviewPageOut.model_validate(
            reviews.list_for_restaurant(restaurant_id, page, limit, rating)
        ).model_dump(mode="json"),
    )
