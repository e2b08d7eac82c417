from fastapi import APIRouter, Depends, Query, HTTPException
from typing import List, Optional

from ppcup.api.deps import get_store
from ppcup.models import TRACK_RATING, player_profiles, suspected_bans
from ppcup.store import Store

router = APIRouter(prefix="/players", tags=["players"])


@router.get("/", response_model=List[dict])
def list_players(
    store: Store = Depends(get_store),
    track: str = Query(TRACK_RATING, pattern="^(rating|pool)$"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    name: Optional[str] = Query(None, description="Filter by nickname substring"),
):
    """
    All-time standing of every player on one track, best rating first.
    """
    rows = store.select_all(player_profiles, {"track": track}, order_by=["-rating", "player_key"])
    if name:
        rows = [r for r in rows if name.lower() in (r["nickname"] or "").lower()]
    return rows[offset:offset + limit]


@router.get("/suspected-banned", response_model=List[dict])
def list_suspected_banned(store: Store = Depends(get_store)):
    return store.select_all(suspected_bans, order_by=["-detected_at"])


@router.get("/{user_id}", response_model=List[dict])
def get_player(user_id: int, store: Store = Depends(get_store)):
    rows = store.select_all(player_profiles, {"user_id": user_id}, order_by=["track"])
    if not rows:
        raise HTTPException(status_code=404, detail="player not found")
    return rows
