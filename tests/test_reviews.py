import pytest

from conftest import OTHER_USER, USER
from food_order.application import cache_keys
from food_order.core.errors import DuplicateReview, InvalidState, NotFound, ValidationFailed
from food_order.domain.enums import OrderStatus
from food_order.domain.models import Restaurant


@pytest.fixture
def delivered_order(place_order, order_engine):
    """Returns a factory for orders that went all the way to DELIVERED."""

    def _deliver(**kwargs):
        order = place_order(**kwargs)
        for status in (
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.READY_FOR_PICKUP,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
        ):
            order = order_engine.update_status(order.id, status)
        return order

    return _deliver


def restaurant_rating(session_factory, restaurant_id):
    with session_factory() as session:
        restaurant = session.get(Restaurant, restaurant_id)
        return restaurant.rating, restaurant.total_reviews


def test_rating_is_mean_of_reviews(delivered_order, review_service, session_factory, catalog):
    for rating in (5, 4, 2):
        review_service.create(USER, delivered_order().id, rating)

    rating, total = restaurant_rating(session_factory, catalog.pho_restaurant)
    assert rating == pytest.approx(11 / 3)
    assert total == 3


def test_deleting_reviews_recomputes_down_to_zero(delivered_order, review_service, session_factory, catalog):
    first = review_service.create(USER, delivered_order().id, 5)
    second = review_service.create(USER, delivered_order().id, 1)

    review_service.delete(USER, first.id)
    assert restaurant_rating(session_factory, catalog.pho_restaurant) == (pytest.approx(1.0), 1)

    review_service.delete(USER, second.id)
    assert restaurant_rating(session_factory, catalog.pho_restaurant) == (0.0, 0)


def test_update_recomputes_when_rating_changes(delivered_order, review_service, session_factory, catalog):
    review = review_service.create(USER, delivered_order().id, 2)

    updated = review_service.update(USER, review.id, rating=4, comment="better second time")

    assert updated.comment == "better second time"
    assert restaurant_rating(session_factory, catalog.pho_restaurant)[0] == pytest.approx(4.0)


def test_only_delivered_orders_can_be_reviewed(place_order, review_service):
    order = place_order()
    with pytest.raises(InvalidState):
        review_service.create(USER, order.id, 5)


def test_one_review_per_order(delivered_order, review_service):
    order = delivered_order()
    review_service.create(USER, order.id, 5)
    with pytest.raises(DuplicateReview):
        review_service.create(USER, order.id, 3)


def test_cannot_review_someone_elses_order(delivered_order, review_service):
    order = delivered_order()
    with pytest.raises(NotFound):
        review_service.create(OTHER_USER, order.id, 5)


@pytest.mark.parametrize("rating", [0, 6, True])
def test_rating_must_be_one_to_five(delivered_order, review_service, rating):
    with pytest.raises(ValidationFailed):
        review_service.create(USER, delivered_order().id, rating)


def test_restaurant_listing_has_statistics(delivered_order, review_service, catalog):
    for rating in (5, 5, 3):
        review_service.create(USER, delivered_order().id, rating, comment=f"{rating} stars")

    page = review_service.list_for_restaurant(catalog.pho_restaurant, page=1, limit=2)

    assert len(page["data"]) == 2
    assert page["pagination"]["total"] == 3
    assert page["statistics"]["rating_distribution"] == {"1": 0, "2": 0, "3": 1, "4": 0, "5": 2}
    assert page["statistics"]["average_rating"] == pytest.approx(13 / 3)

    only_fives = review_service.list_for_restaurant(catalog.pho_restaurant, rating=5)
    assert {r.rating for r in only_fives["data"]} == {5}


def test_my_reviews(delivered_order, review_service):
    review_service.create(USER, delivered_order().id, 4)
    assert review_service.list_for_user(USER)["pagination"]["total"] == 1
    assert review_service.list_for_user(OTHER_USER)["data"] == []


def test_review_writes_invalidate_listings(delivered_order, review_service, cache, catalog):
    order = delivered_order()
    listing = cache_keys.key_for(cache_keys.RESTAURANT_REVIEWS, catalog.pho_restaurant, {"page": 1})
    mine = cache_keys.key_for(cache_keys.USER_REVIEWS, USER, {"page": 1})
    cache.set(listing, {"stale": True})
    cache.set(mine, {"stale": True})

    review_service.create(USER, order.id, 5)

    assert cache.get(listing) is None
    assert cache.get(mine) is None
