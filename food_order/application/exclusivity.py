"""
"At most one default" for a per-user collection.

Addresses and payment methods both keep a single default entry per user.
Instead of each re-implementing "unset all, then set one", both are served by
one DefaultableCollection parameterized with the entity model. Every mutation
re-reads ownership inside its own transaction, and the schema carries a
partial unique index as a last line of defence.

Invariant after every committed mutation: a user with at least one entity has
exactly one default; a user with none has zero.
"""
import logging
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session

from food_order.application.cache_keys import invalidate_after_defaultable_changed
from food_order.core.errors import NotFound, ValidationFailed
from food_order.domain.models import DefaultableMixin, utcnow
from food_order.infrastructure.database import retry_on_conflict, unit_of_work
from food_order.interfaces.ICache import ICache

logger = logging.getLogger(__name__)


class DefaultableCollection:
    """Exclusivity invariant manager for one entity kind."""

    def __init__(
        self,
        model: Type[DefaultableMixin],
        cache: ICache,
        cache_prefix: str,
        label: str,
        session_factory=None,
    ):
        self.model = model
        self.cache = cache
        self.cache_prefix = cache_prefix
        self.label = label
        self.session_factory = session_factory

    # ---------------------------------------------------------
    # WRITES
    # ---------------------------------------------------------

    def create(self, user_id: str, payload: Dict[str, Any], requested_default: bool = False):
        """Insert a new entity. The user's first entity always becomes the default."""
        fields = self._clean_payload(payload)

        def do_create():
            with unit_of_work(self.session_factory) as session:
                make_default = requested_default or not self._has_any(session, user_id)
                if make_default:
                    self._clear_defaults(session, user_id)
                entity = self.model(user_id=user_id, is_default=make_default, **fields)
                session.add(entity)
                session.flush()
                return entity

        entity = retry_on_conflict(do_create)
        logger.info(f"{self.label} created for user {user_id}, id: {entity.id} (default={entity.is_default})")
        self._invalidate(user_id)
        return entity

    def update(
        self,
        user_id: str,
        entity_id: int,
        payload: Dict[str, Any],
        make_default: Optional[bool] = None,
    ):
        """
        Edit payload fields. make_default=True also promotes the entity in the
        same transaction; un-defaulting the current default is ignored because
        the collection would be left without one.
        """
        fields = self._clean_payload(payload)

        def do_update():
            with unit_of_work(self.session_factory) as session:
                entity = self._owned(session, user_id, entity_id, for_update=True)
                for name, value in fields.items():
                    setattr(entity, name, value)
                if make_default and not entity.is_default:
                    self._clear_defaults(session, user_id)
                    entity.is_default = True
                session.flush()
                return entity

        entity = retry_on_conflict(do_update)
        logger.info(f"{self.label} {entity_id} updated by user {user_id}")
        self._invalidate(user_id)
        return entity

    def set_default(self, user_id: str, entity_id: int):
        def do_set():
            with unit_of_work(self.session_factory) as session:
                entity = self._owned(session, user_id, entity_id, for_update=True)
                self._clear_defaults(session, user_id)
                entity.is_default = True
                session.flush()
                return entity

        entity = retry_on_conflict(do_set)
        logger.info(f"{self.label} {entity_id} set as default for user {user_id}")
        self._invalidate(user_id)
        return entity

    def delete(self, user_id: str, entity_id: int) -> Optional[int]:
        """
        Delete an entity. If it was the default, the oldest remaining entity
        is promoted in the same transaction. Returns the promoted id, if any.
        """

        def do_delete():
            with unit_of_work(self.session_factory) as session:
                entity = self._owned(session, user_id, entity_id, for_update=True)
                was_default = entity.is_default
                session.delete(entity)
                session.flush()

                if not was_default:
                    return None
                successor = session.scalars(
                    select(self.model)
                    .where(self.model.user_id == user_id)
                    .order_by(self.model.created_at, self.model.id)
                    .limit(1)
                    .with_for_update()
                ).first()
                if successor is None:
                    return None
                successor.is_default = True
                session.flush()
                return successor.id

        promoted = retry_on_conflict(do_delete)
        logger.info(f"{self.label} {entity_id} deleted by user {user_id}")
        if promoted is not None:
            logger.info(f"{self.label} {promoted} promoted to default for user {user_id}")
        self._invalidate(user_id)
        return promoted

    # ---------------------------------------------------------
    # READS
    # ---------------------------------------------------------

    def list_for_user(self, user_id: str) -> List[Any]:
        """Default first, then newest first."""
        with unit_of_work(self.session_factory) as session:
            rows = session.scalars(
                select(self.model)
                .where(self.model.user_id == user_id)
                .order_by(desc(self.model.is_default), desc(self.model.created_at), desc(self.model.id))
            ).all()
            logger.info(f"Retrieved {len(rows)} {self.label.lower()} entries for user {user_id}")
            return list(rows)

    def get(self, user_id: str, entity_id: int):
        with unit_of_work(self.session_factory) as session:
            return self._owned(session, user_id, entity_id)

    def get_default(self, user_id: str):
        with unit_of_work(self.session_factory) as session:
            return session.scalars(
                select(self.model).where(self.model.user_id == user_id, self.model.is_default.is_(True))
            ).first()

    # ---------------------------------------------------------
    # HELPERS
    # ---------------------------------------------------------

    def _owned(self, session: Session, user_id: str, entity_id: int, for_update: bool = False):
        stmt = select(self.model).where(self.model.id == entity_id, self.model.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        entity = session.scalars(stmt).first()
        if not entity:
            raise NotFound(f"{self.label} not found")
        return entity

    def _has_any(self, session: Session, user_id: str) -> bool:
        return session.scalar(select(self.model.id).where(self.model.user_id == user_id).limit(1)) is not None

    def _clear_defaults(self, session: Session, user_id: str) -> None:
        session.execute(
            update(self.model)
            .where(self.model.user_id == user_id, self.model.is_default.is_(True))
            .values(is_default=False, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )

    def _clean_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(payload) - set(self.model.payload_fields)
        if unknown:
            raise ValidationFailed(f"Unknown {self.label.lower()} fields: {', '.join(sorted(unknown))}")
        columns = self.model.__table__.columns
        required = sorted(name for name, value in payload.items() if value is None and not columns[name].nullable)
        if required:
            raise ValidationFailed(f"{self.label} fields cannot be empty: {', '.join(required)}")
        return dict(payload)

    def _invalidate(self, user_id: str) -> None:
        invalidate_after_defaultable_changed(self.cache, self.cache_prefix, user_id)
