import random

import pytest
from sqlalchemy import func, select

from conftest import OTHER_USER, USER
from food_order.application import cache_keys
from food_order.core.errors import ConflictWrite, NotFound, ValidationFailed
from food_order.domain.models import Address, PaymentMethod
from food_order.infrastructure.database import unit_of_work


def defaults_for(session_factory, model, user_id):
    with session_factory() as session:
        return session.scalar(
            select(func.count(model.id)).where(model.user_id == user_id, model.is_default.is_(True))
        )


def test_first_entry_becomes_default(addresses):
    home = addresses.create(USER, {"full_address": "home"})
    work = addresses.create(USER, {"full_address": "work"})

    assert home.is_default is True
    assert work.is_default is False


def test_requesting_default_moves_it(addresses, session_factory):
    home = addresses.create(USER, {"full_address": "home"})
    work = addresses.create(USER, {"full_address": "work"}, requested_default=True)

    assert work.is_default is True
    assert addresses.get(USER, home.id).is_default is False
    assert defaults_for(session_factory, Address, USER) == 1


def test_set_default(addresses, session_factory):
    home = addresses.create(USER, {"full_address": "home"})
    work = addresses.create(USER, {"full_address": "work"})

    addresses.set_default(USER, work.id)

    assert addresses.get_default(USER).id == work.id
    assert addresses.get(USER, home.id).is_default is False
    assert defaults_for(session_factory, Address, USER) == 1


def test_update_can_promote_but_not_demote(addresses):
    home = addresses.create(USER, {"full_address": "home"})
    work = addresses.create(USER, {"full_address": "work"})

    updated = addresses.update(USER, work.id, {"label": "Office"}, make_default=True)
    assert updated.label == "Office"
    assert updated.is_default is True

    addresses.update(USER, work.id, {}, make_default=False)
    assert addresses.get_default(USER).id == work.id
    assert addresses.get(USER, home.id).is_default is False


def test_unknown_fields_are_rejected(addresses):
    with pytest.raises(ValidationFailed):
        addresses.create(USER, {"full_address": "home", "is_admin": True})


def test_other_users_entries_are_invisible(addresses):
    mine = addresses.create(USER, {"full_address": "home"})
    theirs = addresses.create(OTHER_USER, {"full_address": "theirs"})

    assert theirs.is_default is True
    with pytest.raises(NotFound):
        addresses.get(OTHER_USER, mine.id)
    with pytest.raises(NotFound):
        addresses.set_default(OTHER_USER, mine.id)
    with pytest.raises(NotFound):
        addresses.delete(OTHER_USER, mine.id)
    assert [a.id for a in addresses.list_for_user(USER)] == [mine.id]


def test_list_puts_default_first(addresses):
    a = addresses.create(USER, {"full_address": "a"})
    b = addresses.create(USER, {"full_address": "b"})
    c = addresses.create(USER, {"full_address": "c"})
    addresses.set_default(USER, b.id)

    assert [x.id for x in addresses.list_for_user(USER)] == [b.id, c.id, a.id]


def test_deleting_default_promotes_oldest_remaining(addresses):
    home = addresses.create(USER, {"full_address": "home"})
    work = addresses.create(USER, {"full_address": "work"})
    gym = addresses.create(USER, {"full_address": "gym"})

    assert addresses.delete(USER, home.id) == work.id
    assert addresses.get_default(USER).id == work.id
    assert addresses.delete(USER, gym.id) is None


def test_scenario_delete_everything(addresses, session_factory):
    home = addresses.create(USER, {"full_address": "home"})
    work = addresses.create(USER, {"full_address": "work"})

    addresses.delete(USER, home.id)
    assert addresses.get(USER, work.id).is_default is True

    assert addresses.delete(USER, work.id) is None
    assert addresses.list_for_user(USER) == []
    assert defaults_for(session_factory, Address, USER) == 0


def test_random_operations_keep_exactly_one_default(payment_methods, session_factory):
    rng = random.Random(7)
    ids = []
    for step in range(60):
        op = rng.choice(["create", "create", "default", "update", "delete"])
        if op == "create" or not ids:
            pm = payment_methods.create(USER, {"type": "CASH"}, requested_default=rng.random() < 0.3)
            ids.append(pm.id)
        elif op == "default":
            payment_methods.set_default(USER, rng.choice(ids))
        elif op == "update":
            payment_methods.update(USER, rng.choice(ids), {"card_holder": f"h{step}"}, make_default=rng.random() < 0.5)
        else:
            victim = rng.choice(ids)
            ids.remove(victim)
            payment_methods.delete(USER, victim)

        expected = 1 if ids else 0
        assert defaults_for(session_factory, PaymentMethod, USER) == expected


def test_schema_rejects_second_default(session_factory, addresses):
    addresses.create(USER, {"full_address": "home"})

    with pytest.raises(ConflictWrite):
        with unit_of_work(session_factory) as session:
            session.add(Address(user_id=USER, full_address="rogue", is_default=True))


def test_writes_invalidate_only_that_kind(addresses, cache):
    cache.set(cache_keys.key_for(cache_keys.ADDRESSES, USER, {"view": "list"}), [1])
    cache.set(cache_keys.key_for(cache_keys.PAYMENT_METHODS, USER, {"view": "list"}), [2])

    addresses.create(USER, {"full_address": "home"})

    assert cache.keys() == [cache_keys.key_for(cache_keys.PAYMENT_METHODS, USER, {"view": "list"})]


def test_null_for_required_field_is_rejected(addresses, payment_methods):
    home = addresses.create(USER, {"full_address": "home"})

    with pytest.raises(ValidationFailed):
        addresses.update(USER, home.id, {"full_address": None})
    with pytest.raises(ValidationFailed):
        payment_methods.create(USER, {"type": None})

    assert addresses.get(USER, home.id).full_address == "home"
    addresses.update(USER, home.id, {"label": None})


def test_constraint_failures_from_bad_data_are_not_conflicts(session_factory):
    with pytest.raises(ValidationFailed):
        with unit_of_work(session_factory) as session:
            session.add(Address(user_id=USER, full_address=None))
