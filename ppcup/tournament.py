# ppcup/tournament.py

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Table

from ppcup.errors import AlreadyRegistered, ExternalFetchFailure, PersistenceFailure, SnapshotConflict
from ppcup.logger import setup_logger
from ppcup.models import TRACK_RATING, participants, history_snapshots, history_entries
from ppcup.points import calculate_points
from ppcup.ranking import RankEntry, changed_positions

logger = setup_logger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def rerank(store, table: Table = participants, score_column: str = "points") -> int:
    """Recompute positions of a live table, writing only the ones that moved."""
    rows = store.select_all(table)
    entries = [RankEntry(r["user_id"], r[score_column] or 0, r["registered_at"]) for r in rows]
    current = {r["user_id"]: r["position"] for r in rows}
    changed = changed_positions(entries, current)
    for user_id, position in changed:
        store.update(table, {"user_id": user_id}, {"position": position})
    return len(changed)


def list_participants(store) -> List[Dict[str, Any]]:
    return store.select_all(participants, order_by=["position", "user_id"])


def register(store, user, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Enter a user into the open cup with their current pp as the start line."""
    if store.select_all(participants, {"user_id": user.user_id}):
        raise AlreadyRegistered(user.user_id)

    row = {
        "user_id": user.user_id,
        "nickname": user.username,
        "avatar_url": user.avatar_url or "",
        "rating_start": user.rating,
        "rating_end": user.rating,
        "play_count": user.play_count,
        "points": calculate_points(user.rating, user.rating),
        "position": None,
        "registered_at": now or utcnow(),
    }
    store.insert(participants, [row])
    rerank(store)
    logger.info(f"Registered {user.username} ({user.user_id}) at {user.rating:.2f}pp")
    return store.select_all(participants, {"user_id": user.user_id})[0]


def refresh(store, rating_source) -> Dict[str, int]:
    """
    One tick: fetch every participant's pp, recompute points, re-rank.
    A participant whose fetch fails keeps their previous values.
    """
    updated = skipped = 0
    for row in store.select_all(participants):
        try:
            stats = rating_source.get_user_stats(row["user_id"])
        except ExternalFetchFailure as exc:
            logger.error(f"Could not update {row['nickname']}: {exc.reason}")
            skipped += 1
            continue

        store.update(participants, {"user_id": row["user_id"]}, {
            "nickname": stats.username or row["nickname"],
            "avatar_url": stats.avatar_url or row["avatar_url"],
            "rating_end": stats.rating,
            "play_count": stats.play_count,
            "points": calculate_points(row["rating_start"], stats.rating),
        })
        updated += 1

    moved = rerank(store)
    logger.info(f"Refresh done: {updated} updated, {skipped} skipped, {moved} positions changed")
    return {"updated": updated, "skipped": skipped, "moved": moved}


def _identity(entry: Dict[str, Any]):
    if entry.get("user_id") is not None:
        return entry["user_id"]
    return (entry.get("nickname") or "").strip().lower()


def write_snapshot(store, track: str, entries: List[Dict[str, Any]],
                   closed_at: datetime, opened_at: Optional[datetime] = None) -> int:
    """
    Write one closed cup into history and return its snapshot id.

    The snapshot is keyed by (track, opened_at), the moment the cup opened, so
    retrying the close of the same cup finds the snapshot it already wrote and
    leaves it as is. A written snapshot is never modified: if the key matches
    but the stored players differ, SnapshotConflict is raised before anything
    is written.
    """
    opened_at = opened_at or closed_at
    key = {"track": track, "opened_at": opened_at}

    existing = store.select_all(history_snapshots, key)
    if existing:
        snapshot_id = existing[0]["snapshot_id"]
        stored = store.select_all(history_entries, {"snapshot_id": snapshot_id})
        if stored:
            if sorted(map(_identity, stored), key=str) != sorted(map(_identity, entries), key=str):
                raise SnapshotConflict(
                    f"{track} snapshot {snapshot_id} opened at {opened_at} already holds other players"
                )
            logger.info(f"{track} snapshot {snapshot_id} already written; reusing it")
            return snapshot_id
    else:
        store.insert(history_snapshots, [dict(key, closed_at=closed_at)])
        snapshot_id = store.select_all(history_snapshots, key)[0]["snapshot_id"]

    # one statement batch, so the entries land all together or not at all
    store.insert(history_entries, [dict(e, snapshot_id=snapshot_id) for e in entries])
    stored = store.select_all(history_entries, {"snapshot_id": snapshot_id})
    if len(stored) != len(entries):
        raise PersistenceFailure(
            f"snapshot {snapshot_id}: expected {len(entries)} entries, found {len(stored)}"
        )
    return snapshot_id


def close(store, closed_at: Optional[datetime] = None) -> Optional[int]:
    """
    Move the open cup into history. Live rows are deleted only after the
    snapshot is confirmed, so a failure part-way leaves them for the next try.
    """
    rerank(store)
    rows = list_participants(store)
    if not rows:
        logger.info("No participants; nothing to close")
        return None

    entries = [
        {
            "position": r["position"],
            "user_id": r["user_id"],
            "nickname": r["nickname"],
            "avatar_url": r["avatar_url"],
            "rating_start": r["rating_start"],
            "rating_end": r["rating_end"],
            "play_count": r["play_count"],
            "score": r["points"],
        }
        for r in rows
    ]
    opened_at = min(r["registered_at"] for r in rows)
    snapshot_id = write_snapshot(store, TRACK_RATING, entries, closed_at or utcnow(), opened_at)
    store.delete_where(participants, {"user_id": [r["user_id"] for r in rows]})
    logger.info(f"Closed cup into snapshot {snapshot_id} with {len(rows)} participants")
    return snapshot_id
