from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ppcup import pool, tournament
from ppcup.api.deps import get_cache, get_rating_source, get_store
from ppcup.config import Config
from ppcup.eligibility import EligibilityFilter
from ppcup.models import TRACK_POOL, TRACK_RATING
from ppcup.reconcile import HistoryReconciler
from ppcup.store import Store

router = APIRouter(prefix="/admin", tags=["admin"])


class AdminRequest(BaseModel):
    nickname: str
    track: str = TRACK_RATING
    rebuild: bool = False


def check_admin(nickname: str) -> None:
    if nickname.lower() not in Config.get_admin_nicknames():
        raise HTTPException(status_code=403, detail="forbidden")


def require_admin(body: AdminRequest) -> AdminRequest:
    check_admin(body.nickname)
    if body.track not in (TRACK_RATING, TRACK_POOL):
        raise HTTPException(status_code=400, detail="unknown track")
    return body


@router.post("/update", response_model=dict)
def update(
    body: AdminRequest = Depends(require_admin),
    store: Store = Depends(get_store),
    source=Depends(get_rating_source),
    cache=Depends(get_cache),
):
    """Run one refresh tick now instead of waiting for the timer."""
    if body.track == TRACK_POOL:
        result = pool.refresh(store, source)
    else:
        result = tournament.refresh(store, source)
    cache.invalidate("participants:")
    return dict(result, success=True)


@router.post("/close", response_model=dict)
def close(
    body: AdminRequest = Depends(require_admin),
    store: Store = Depends(get_store),
    cache=Depends(get_cache),
):
    if body.track == TRACK_POOL:
        snapshot_id = pool.close(store)
    else:
        snapshot_id = tournament.close(store)
    cache.invalidate("participants:")
    return {"success": True, "snapshot_id": snapshot_id}


@router.post("/reconcile", response_model=dict)
def reconcile(
    body: AdminRequest = Depends(require_admin),
    store: Store = Depends(get_store),
    source=Depends(get_rating_source),
):
    reconciler = HistoryReconciler(store, EligibilityFilter(source), body.track)
    result = reconciler.rebuild() if body.rebuild else reconciler.reconcile()
    return dict(result, success=True)
