from fastapi import APIRouter, Depends, Query, HTTPException
from typing import List, Optional

from ppcup.api.deps import get_store
from ppcup.models import history_snapshots, history_entries
from ppcup.store import Store

router = APIRouter(prefix="/history", tags=["history"])


@router.get("/", response_model=List[dict])
def list_snapshots(
    store: Store = Depends(get_store),
    track: Optional[str] = Query(None, pattern="^(rating|pool)$"),
):
    filters = {"track": track} if track else None
    return store.select_all(history_snapshots, filters, order_by=["-closed_at"])


@router.get("/{snapshot_id}", response_model=dict)
def get_snapshot(snapshot_id: int, store: Store = Depends(get_store)):
    snaps = store.select_all(history_snapshots, {"snapshot_id": snapshot_id})
    if not snaps:
        raise HTTPException(status_code=404, detail="snapshot not found")
    entries = store.select_all(history_entries, {"snapshot_id": snapshot_id}, order_by=["position"])
    return dict(snaps[0], entries=entries)
