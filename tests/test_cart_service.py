import pytest

from conftest import OTHER_USER, USER
from food_order.core.errors import ItemUnavailable, NotFound, ValidationFailed


def test_adding_same_item_twice_merges_into_one_line(cart_store, catalog):
    cart_store.add_item(USER, catalog.pho, 2)
    line = cart_store.add_item(USER, catalog.pho, 1)

    cart = cart_store.get_cart(USER)
    assert len(cart["items"]) == 1
    assert cart["items"][0].id == line.id
    assert line.quantity == 3


def test_merge_keeps_instructions_unless_new_ones_given(cart_store, catalog):
    cart_store.add_item(USER, catalog.pho, 1, "no onions")
    line = cart_store.add_item(USER, catalog.pho, 1)
    assert line.special_instructions == "no onions"

    line = cart_store.add_item(USER, catalog.pho, 1, "extra herbs")
    assert line.special_instructions == "extra herbs"


def test_cart_summary_uses_effective_price(cart_store, catalog):
    cart_store.add_item(USER, catalog.pho, 2)
    cart_store.add_item(USER, catalog.spring_rolls, 3)

    summary = cart_store.get_cart(USER)["summary"]

    assert summary["item_count"] == 2
    assert summary["total_quantity"] == 5
    assert summary["subtotal"] == pytest.approx(29.0)  # 2 * 10.0 + 3 * 3.0 (discounted)
    assert summary["delivery_fee"] == pytest.approx(2.5)
    assert summary["total"] == pytest.approx(31.5)


def test_empty_cart_has_zero_summary(cart_store):
    cart = cart_store.get_cart(USER)
    assert cart["items"] == []
    assert cart["summary"]["total"] == 0


@pytest.mark.parametrize("item", ["sold_out", "soup"])
def test_unavailable_items_are_rejected(cart_store, catalog, item):
    with pytest.raises(ItemUnavailable):
        cart_store.add_item(USER, getattr(catalog, item), 1)
    assert cart_store.count(USER) == 0


def test_unknown_item_is_not_found(cart_store, catalog):
    with pytest.raises(NotFound):
        cart_store.add_item(USER, 9999, 1)


@pytest.mark.parametrize("quantity", [0, -2])
def test_quantity_must_be_positive(cart_store, catalog, quantity):
    with pytest.raises(ValidationFailed):
        cart_store.add_item(USER, catalog.pho, quantity)


def test_update_quantity(cart_store, catalog):
    line = cart_store.add_item(USER, catalog.pho, 1)

    updated = cart_store.update_quantity(USER, line.id, 4)

    assert updated.quantity == 4
    assert updated.line_total == pytest.approx(40.0)
    with pytest.raises(ValidationFailed):
        cart_store.update_quantity(USER, line.id, 0)


def test_lines_are_private_to_their_owner(cart_store, catalog):
    line = cart_store.add_item(USER, catalog.pho, 1)

    with pytest.raises(NotFound):
        cart_store.update_quantity(OTHER_USER, line.id, 5)
    assert cart_store.remove_item(OTHER_USER, line.id) is False
    assert cart_store.count(USER) == 1


def test_remove_item_is_idempotent(cart_store, catalog):
    line = cart_store.add_item(USER, catalog.pho, 1)

    assert cart_store.remove_item(USER, line.id) is True
    assert cart_store.remove_item(USER, line.id) is False


def test_clear_removes_every_line(cart_store, catalog):
    cart_store.add_item(USER, catalog.pho, 1)
    cart_store.add_item(USER, catalog.margherita, 1)
    cart_store.add_item(OTHER_USER, catalog.pho, 1)

    assert cart_store.clear(USER) == 2
    assert cart_store.count(USER) == 0
    assert cart_store.count(OTHER_USER) == 1
