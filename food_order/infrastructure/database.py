import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from food_order.core.config import settings
from food_order.core.errors import ConflictWrite, ValidationFailed

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")

# Driver messages that mean "another transaction got there first".
_CONFLICT_MARKERS = ("deadlock", "lock", "serializ", "could not obtain")

# Unique constraints that only fail when two writers race. PostgreSQL reports
# the constraint name, SQLite the constrained columns.
_CONCURRENCY_GUARDS = (
    "uq_addresses_user_default",
    "uq_payment_methods_user_default",
    "uq_cart_items_cart_menu_item",
    "ix_orders_order_number",
    "ix_carts_user_id",
    "addresses.user_id",
    "payment_methods.user_id",
    "cart_items.cart_id, cart_items.menu_item_id",
    "orders.order_number",
    "carts.user_id",
)


def make_engine(url: str, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    # expire_on_commit=False so services can hand committed rows back to callers
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)


@contextmanager
def unit_of_work(session_factory: Callable[[], Session] = None) -> Iterator[Session]:
    """
    One transaction per block: commit on success, rollback on any exception.

    Concurrency failures coming out of the driver are translated to
    ConflictWrite so callers can retry. Other integrity violations become
    ValidationFailed; everything else propagates untouched.
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except StaleDataError as e:
        session.rollback()
        logger.warning(f"Stale write detected: {e}")
        raise ConflictWrite("The record was modified by another request. Please retry.") from e
    except IntegrityError as e:
        session.rollback()
        if _is_concurrency_guard(e):
            logger.warning(f"Integrity conflict: {e.orig}")
            raise ConflictWrite("A concurrent request changed the same data. Please retry.") from e
        logger.warning(f"Rejected write: {e.orig}")
        raise ValidationFailed("The request violates a data constraint") from e
    except OperationalError as e:
        session.rollback()
        if any(m in str(e.orig).lower() for m in _CONFLICT_MARKERS):
            logger.warning(f"Lock conflict: {e.orig}")
            raise ConflictWrite("The database is busy with a conflicting write. Please retry.") from e
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def retry_on_conflict(operation: Callable[[], T], attempts: int = 2) -> T:
    """Run `operation`, re-running it once more if it fails with ConflictWrite."""
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConflictWrite:
            if attempt == attempts:
                raise
            logger.info(f"🔄 Conflict on attempt {attempt}/{attempts}, retrying...")


def _is_concurrency_guard(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    if "unique" not in message and "duplicate key" not in message:
        return False
    return any(guard in message for guard in _CONCURRENCY_GUARDS)
