"""
Routers for the per-user collections that keep exactly one default entry
(addresses, payment methods). One factory builds both, the same way one
DefaultableCollection serves both.
"""
from typing import List, Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from food_order.application import cache_keys
from food_order.application.exclusivity import DefaultableCollection
from food_order.interfaces.ICache import ICache
from food_order.interfaces.dependencies import collection_dependency, get_cache, get_current_user_id


def build_defaultable_router(
    *,
    path: str,
    tag: str,
    state_attr: str,
    cache_prefix: str,
    create_schema: Type[BaseModel],
    update_schema: Type[BaseModel],
    out_schema: Type[BaseModel],
) -> APIRouter:
    router = APIRouter(prefix=path, tags=[tag])
    get_collection = collection_dependency(state_attr)

    @router.get("", response_model=List[out_schema])
    def list_entries(
        user_id: str = Depends(get_current_user_id),
        collection: DefaultableCollection = Depends(get_collection),
        cache: ICache = Depends(get_cache),
    ):
        key = cache_keys.key_for(cache_prefix, user_id, {"view": "list"})
        return cache_keys.cached_read(
            cache,
            key,
            lambda: [out_schema.model_validate(row).model_dump(mode="json") for row in collection.list_for_user(user_id)],
        )

    @router.get("/{entry_id}", response_model=out_schema)
    def get_entry(
        entry_id: int,
        user_id: str = Depends(get_current_user_id),
        collection: DefaultableCollection = Depends(get_collection),
    ):
        return collection.get(user_id, entry_id)

    @router.post("", response_model=out_schema, status_code=201)
    def create_entry(
        payload: create_schema,
        user_id: str = Depends(get_current_user_id),
        collection: DefaultableCollection = Depends(get_collection),
    ):
        fields = payload.model_dump(exclude={"is_default"})
        return collection.create(user_id, fields, requested_default=payload.is_default)

    @router.put("/{entry_id}", response_model=out_schema)
    def update_entry(
        entry_id: int,
        payload: update_schema,
        user_id: str = Depends(get_current_user_id),
        collection: DefaultableCollection = Depends(get_collection),
    ):
        fields = payload.model_dump(exclude_unset=True, exclude={"is_default"})
        return collection.update(user_id, entry_id, fields, make_default=payload.is_default)

    @router.put("/{entry_id}/default", response_model=out_schema)
    def set_default_entry(
        entry_id: int,
        user_id: str = Depends(get_current_user_id),
        collection: DefaultableCollection = Depends(get_collection),
    ):
        return collection.set_default(user_id, entry_id)

    @router.delete("/{entry_id}")
    def delete_entry(
        entry_id: int,
        user_id: str = Depends(get_current_user_id),
        collection: DefaultableCollection = Depends(get_collection),
    ):
        promoted = collection.delete(user_id, entry_id)
        return {"success": True, "promoted_default_id": promoted}

    return router
