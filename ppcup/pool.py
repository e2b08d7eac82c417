# ppcup/pool.py

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ppcup.errors import AlreadyRegistered, ExternalFetchFailure
from ppcup.logger import setup_logger
from ppcup.models import TRACK_POOL, pool_maps, pool_participants, pool_scores
from ppcup.tournament import rerank, utcnow, write_snapshot

logger = setup_logger(__name__)


def set_maps(store, maps: Iterable[Dict[str, Any]]) -> List[int]:
    """Replace the pooled map set with `maps` ({map_id, title})."""
    rows = [{"map_id": int(m["map_id"]), "title": m.get("title") or ""} for m in maps]
    ids = [r["map_id"] for r in rows]
    store.upsert(pool_maps, rows, ["map_id"])
    stale = [m["map_id"] for m in store.select_all(pool_maps) if m["map_id"] not in ids]
    if stale:
        store.delete_where(pool_scores, {"map_id": stale})
        store.delete_where(pool_maps, {"map_id": stale})
    return ids


def list_maps(store) -> List[Dict[str, Any]]:
    return store.select_all(pool_maps, order_by=["map_id"])


def list_participants(store) -> List[Dict[str, Any]]:
    return store.select_all(pool_participants, order_by=["position", "user_id"])


def register(store, user, now: Optional[datetime] = None) -> Dict[str, Any]:
    if store.select_all(pool_participants, {"user_id": user.user_id}):
        raise AlreadyRegistered(user.user_id)
    store.insert(pool_participants, [{
        "user_id": user.user_id,
        "nickname": user.username,
        "avatar_url": user.avatar_url or "",
        "rating_start": user.rating,
        "play_count": user.play_count,
        "score": 0,
        "position": None,
        "registered_at": now or utcnow(),
    }])
    rerank(store, pool_participants, "score")
    logger.info(f"Registered {user.username} ({user.user_id}) for the pool")
    return store.select_all(pool_participants, {"user_id": user.user_id})[0]


def refresh(store, rating_source, since: Optional[datetime] = None) -> Dict[str, int]:
    """
    Pull recent scores of every pool participant, keep the best one per
    pooled map, and set each participant's score to the sum of their bests.
    Only scores set after registration (and after `since`, if given) count.
    """
    map_ids = {m["map_id"] for m in store.select_all(pool_maps)}
    best: Dict[tuple, int] = {
        (s["user_id"], s["map_id"]): s["score"] for s in store.select_all(pool_scores)
    }

    updated = skipped = 0
    for row in store.select_all(pool_participants):
        user_id = row["user_id"]
        cutoff = max(since, row["registered_at"]) if since else row["registered_at"]
        try:
            scores = rating_source.get_user_recent_scores(user_id, since=cutoff)
        except ExternalFetchFailure as exc:
            logger.error(f"Could not fetch pool scores for {row['nickname']}: {exc.reason}")
            skipped += 1
            continue

        improved = []
        for s in scores:
            key = (user_id, s["map_id"])
            if s["map_id"] in map_ids and s["score"] > best.get(key, -1):
                best[key] = s["score"]
                improved.append({
                    "user_id": user_id,
                    "map_id": s["map_id"],
                    "score": s["score"],
                    "pp": s.get("pp"),
                    "achieved_at": s.get("achieved_at"),
                })
        # several passes on one map: keep only the last (highest) row per map
        dedup = {r["map_id"]: r for r in improved}
        store.upsert(pool_scores, list(dedup.values()), ["user_id", "map_id"])

        total = sum(v for (uid, mid), v in best.items() if uid == user_id and mid in map_ids)
        store.update(pool_participants, {"user_id": user_id}, {"score": total})
        updated += 1

    moved = rerank(store, pool_participants, "score")
    logger.info(f"Pool refresh done: {updated} updated, {skipped} skipped, {moved} positions changed")
    return {"updated": updated, "skipped": skipped, "moved": moved}


def close(store, closed_at: Optional[datetime] = None) -> Optional[int]:
    rerank(store, pool_participants, "score")
    rows = list_participants(store)
    if not rows:
        logger.info("No pool participants; nothing to close")
        return None

    entries = [
        {
            "position": r["position"],
            "user_id": r["user_id"],
            "nickname": r["nickname"],
            "avatar_url": r["avatar_url"],
            "rating_start": r["rating_start"],
            "rating_end": None,
            "play_count": r["play_count"],
            "score": r["score"],
        }
        for r in rows
    ]
    opened_at = min(r["registered_at"] for r in rows)
    snapshot_id = write_snapshot(store, TRACK_POOL, entries, closed_at or utcnow(), opened_at)
    user_ids = [r["user_id"] for r in rows]
    store.delete_where(pool_scores, {"user_id": user_ids})
    store.delete_where(pool_participants, {"user_id": user_ids})
    logger.info(f"Closed pool into snapshot {snapshot_id} with {len(rows)} participants")
    return snapshot_id
