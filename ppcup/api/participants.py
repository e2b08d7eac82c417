from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from typing import List

from ppcup import tournament
from ppcup.api.deps import get_cache, get_rating_source, get_store
from ppcup.config import Config
from ppcup.errors import AlreadyRegistered, ExternalFetchFailure
from ppcup.store import Store

router = APIRouter(prefix="/participants", tags=["participants"])

CACHE_KEY = "participants:rating"


class Registration(BaseModel):
    code: str


@router.get("/", response_model=List[dict])
def list_participants(
    store: Store = Depends(get_store),
    cache=Depends(get_cache),
):
    """Current cup standings, position 1 first."""
    rows = cache.get(CACHE_KEY)
    if rows is None:
        rows = jsonable_encoder(tournament.list_participants(store))
        cache.set(CACHE_KEY, rows, Config.CACHE_TTL_SECONDS)
    return rows


@router.post("/", response_model=dict)
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
        row = tournament.register(store, user)
    except AlreadyRegistered:
        raise HTTPException(status_code=400, detail="already participating")
    cache.invalidate("participants:")
    return {"success": True, "user": row}
