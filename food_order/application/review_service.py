import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from food_order.application.cache_keys import invalidate_after_review_changed
from food_order.core.errors import DuplicateReview, InvalidState, NotFound, ValidationFailed
from food_order.domain.enums import OrderStatus
from food_order.domain.models import Order, Restaurant, Review
from food_order.infrastructure.database import unit_of_work
from food_order.interfaces.ICache import ICache

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class RatingAggregator:
    """Keeps Restaurant.rating equal to the mean of its reviews (0 with no reviews)."""

    def recompute(self, session: Session, restaurant_id: int) -> float:
        """Runs inside the caller's transaction so the new aggregate commits with the review write."""
        avg_rating, count = session.execute(
            select(func.avg(Review.rating), func.count(Review.id)).where(Review.restaurant_id == restaurant_id)
        ).one()
        restaurant = session.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFound("Restaurant not found")
        restaurant.rating = float(avg_rating or 0.0)
        restaurant.total_reviews = count
        session.flush()
        logger.info(f"Restaurant {restaurant_id} rating updated to {restaurant.rating}")
        return restaurant.rating


class ReviewService:
    def __init__(self, cache: ICache, aggregator: Optional[RatingAggregator] = None, session_factory=None):
        self.cache = cache
        self.aggregator = aggregator or RatingAggregator()
        self.session_factory = session_factory

    # ---------------------------------------------------------
    # WRITES
    # ---------------------------------------------------------

    def create(
        self,
        user_id: str,
        order_id: int,
        rating: int,
        comment: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> Review:
        """Review a delivered order. One review per order."""
        _check_rating(rating)

        with unit_of_work(self.session_factory) as session:
            order = session.scalars(select(Order).where(Order.id == order_id, Order.user_id == user_id)).first()
            if not order:
                raise NotFound("Order not found")
            if order.status != OrderStatus.DELIVERED:
                raise InvalidState("Can only review delivered orders")
            if session.scalar(select(Review.id).where(Review.order_id == order_id)) is not None:
                raise DuplicateReview("Review already exists for this order")

            review = Review(
                user_id=user_id,
                restaurant_id=order.restaurant_id,
                order_id=order_id,
                rating=rating,
                comment=comment,
                images=list(images or []),
            )
            session.add(review)
            try:
                session.flush()
            except IntegrityError as e:
                # Lost the race against a concurrent review of the same order.
                raise DuplicateReview("Review already exists for this order") from e

            self.aggregator.recompute(session, order.restaurant_id)

        logger.info(f"Review created for order {order_id} by user {user_id}, rating: {rating}")
        invalidate_after_review_changed(self.cache, user_id, review.restaurant_id)
        return review

    def update(
        self,
        user_id: str,
        review_id: int,
        rating: Optional[int] = None,
        comment: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> Review:
        if rating is not None:
            _check_rating(rating)

        with unit_of_work(self.session_factory) as session:
            review = self._owned(session, user_id, review_id)
            rating_changed = rating is not None and rating != review.rating
            if rating is not None:
                review.rating = rating
            if comment is not None:
                review.comment = comment
            if images is not None:
                review.images = list(images)
            session.flush()
            if rating_changed:
                self.aggregator.recompute(session, review.restaurant_id)

        logger.info(f"Review {review_id} updated by user {user_id}")
        invalidate_after_review_changed(self.cache, user_id, review.restaurant_id)
        return review

    def delete(self, user_id: str, review_id: int) -> None:
        with unit_of_work(self.session_factory) as session:
            review = self._owned(session, user_id, review_id)
            restaurant_id = review.restaurant_id
            session.delete(review)
            session.flush()
            self.aggregator.recompute(session, restaurant_id)

        logger.info(f"Review {review_id} deleted by user {user_id}")
        invalidate_after_review_changed(self.cache, user_id, restaurant_id)

    # ---------------------------------------------------------
    # READS
    # ---------------------------------------------------------

    def get(self, user_id: str, review_id: int) -> Review:
        with unit_of_work(self.session_factory) as session:
            return self._owned(session, user_id, review_id)

    def list_for_restaurant(
        self, restaurant_id: int, page: int = 1, limit: int = 10, rating: Optional[int] = None
    ) -> Dict[str, Any]:
        """Paged reviews plus average, total and the 1-5 star distribution."""
        _check_page(page, limit)
        with unit_of_work(self.session_factory) as session:
            where = [Review.restaurant_id == restaurant_id]
            if rating is not None:
                where.append(Review.rating == rating)

            total = session.scalar(select(func.count(Review.id)).where(*where)) or 0
            reviews = session.scalars(
                select(Review)
                .where(*where)
                .order_by(desc(Review.created_at), desc(Review.id))
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()

            distribution = {str(star): 0 for star in range(MIN_RATING, MAX_RATING + 1)}
            for star, count in session.execute(
                select(Review.rating, func.count(Review.id))
                .where(Review.restaurant_id == restaurant_id)
                .group_by(Review.rating)
            ):
                distribution[str(star)] = count
            average = session.scalar(
                select(func.avg(Review.rating)).where(Review.restaurant_id == restaurant_id)
            )

        logger.info(f"Retrieved {len(reviews)} reviews for restaurant {restaurant_id} (page {page})")
        return {
            "data": list(reviews),
            "pagination": _pagination(page, limit, total),
            "statistics": {
                "average_rating": float(average or 0.0),
                "total_reviews": total,
                "rating_distribution": distribution,
            },
        }

    def list_for_user(self, user_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        _check_page(page, limit)
        with unit_of_work(self.session_factory) as session:
            total = session.scalar(select(func.count(Review.id)).where(Review.user_id == user_id)) or 0
            reviews = session.scalars(
                select(Review)
                .where(Review.user_id == user_id)
                .order_by(desc(Review.created_at), desc(Review.id))
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
        return {"data": list(reviews), "pagination": _pagination(page, limit, total)}

    def _owned(self, session: Session, user_id: str, review_id: int) -> Review:
        review = session.scalars(select(Review).where(Review.id == review_id, Review.user_id == user_id)).first()
        if not review:
            raise NotFound("Review not found")
        return review


def _check_rating(rating: int) -> None:
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationFailed(f"Rating must be between {MIN_RATING} and {MAX_RATING}")


def _check_page(page: int, limit: int) -> None:
    if page < 1 or not 1 <= limit <= 100:
        raise ValidationFailed("page must be >= 1 and limit between 1 and 100")


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "total_pages": (total + limit - 1) // limit}
