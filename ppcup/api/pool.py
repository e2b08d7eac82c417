from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from typing import List

from ppcup import pool
from ppcup.api.admin import check_admin
from ppcup.api.deps import get_cache, get_rating_source, get_store
from ppcup.api.participants import Registration
from ppcup.config import Config
from ppcup.errors import AlreadyRegistered, ExternalFetchFailure
from ppcup.store import Store

router = APIRouter(prefix="/pool", tags=["pool"])

CACHE_KEY = "participants:pool"


class PoolMap(BaseModel):
    map_id: int
    title: str = ""


class PoolMapsRequest(BaseModel):
    nickname: str
    maps: List[PoolMap]


@router.get("/maps", response_model=List[dict])
def list_maps(store: Store = Depends(get_store)):
    return pool.list_maps(store)


@router.post("/maps", response_model=List[dict])
def set_maps(
    body: PoolMapsRequest,
    store: Store = Depends(get_store),
    cache=Depends(get_cache),
):
    """Replace the pooled map set (admin only). Scores on dropped maps are removed."""
    check_admin(body.nickname)
    pool.set_maps(store, [{"map_id": m.map_id, "title": m.title} for m in body.maps])
    cache.invalidate("participants:")
    return pool.list_maps(store)


@router.get("/participants", response_model=List[dict])
def list_participants(
    store: Store = Depends(get_store),
    cache=Depends(get_cache),
):
    rows = cache.get(CACHE_KEY)
    if rows is None:
        rows = jsonable_encoder(pool.list_participants(store))
        cache.set(CACHE_KEY, rows, Config.CACHE_TTL_SECONDS)
    return rows


@router.post("/participants", response_model=dict)
def participate(
    body: Registration,
    store: Store = Depends(get_store),
    source=Depends(get_rating_source),
    cache=Depends(get_cache),
):
    try:
        user = source.exchange_code(body.code)
    except ExternalFetchFailure:
        raise HTTPException(status_code=502, detail="authorization failed")
    try:
        row = pool.register(store, user)
    except AlreadyRegistered:
        raise HTTPException(status_code=400, detail="already participating")
    cache.invalidate("participants:")
    return {"success": True, "user": row}
