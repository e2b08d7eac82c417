# ppcup/reconcile.py

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ppcup.elo import DEFAULT_ELO, K_FACTOR, is_processed, propagate
from ppcup.errors import DataIntegrityAmbiguity
from ppcup.logger import setup_logger
from ppcup.models import (
    TRACK_RATING, history_snapshots, history_entries, player_profiles, suspected_bans,
)

logger = setup_logger(__name__)


def id_key(user_id: int) -> str:
    return f"id:{user_id}"


def nick_key(nickname: str) -> str:
    return f"nick:{nickname.strip().lower()}"


class IdentityResolver:
    """
    Maps history entries to profile keys. A user id always wins. An entry
    without one is matched case-insensitively by nickname: a nickname-only
    profile that already exists keeps it, otherwise a player seen with an id
    under that nickname, otherwise any other profile carrying it.
    """

    def __init__(self, profiles: Iterable[Dict[str, Any]] = (), entries: Iterable[Dict[str, Any]] = ()):
        self.by_nickname: Dict[str, str] = {}
        # entries carrying both fields teach us which id a nickname belongs to
        for e in entries:
            if e.get("user_id") is not None and e.get("nickname"):
                self.by_nickname[e["nickname"].strip().lower()] = id_key(e["user_id"])
        for p in profiles:
            if not p.get("nickname"):
                continue
            low = p["nickname"].strip().lower()
            if p["player_key"].startswith("nick:"):
                self.by_nickname[low] = p["player_key"]
            else:
                self.by_nickname.setdefault(low, p["player_key"])

    def resolve(self, entry: Dict[str, Any]) -> str:
        if entry.get("user_id") is not None:
            return id_key(entry["user_id"])
        nickname = (entry.get("nickname") or "").strip()
        if not nickname:
            raise DataIntegrityAmbiguity(f"history entry {entry.get('id')} has neither user id nor nickname")
        low = nickname.lower()
        if low in self.by_nickname:
            key = self.by_nickname[low]
            logger.info(f"Entry {entry.get('id')} matched to {key} by nickname '{nickname}'")
            return key
        key = nick_key(nickname)
        self.by_nickname[low] = key
        logger.info(f"Entry {entry.get('id')} has no user id; tracking '{nickname}' as {key}")
        return key


def new_profile(track: str, key: str, entry: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "track": track,
        "player_key": key,
        "user_id": entry.get("user_id"),
        "nickname": entry.get("nickname"),
        "rating": DEFAULT_ELO,
        "participations": 0,
        "wins": 0,
        "total_points": 0,
        "best_position": None,
        "last_snapshot_id": None,
    }


def fold(profile: Dict[str, Any], entry: Dict[str, Any], rating: int, won: bool, snapshot_id: int) -> None:
    """Add one cup result to a profile in place."""
    profile["participations"] += 1
    profile["total_points"] += entry.get("score") or 0
    if profile["best_position"] is None or entry["position"] < profile["best_position"]:
        profile["best_position"] = entry["position"]
    if won:
        profile["wins"] += 1
    profile["rating"] = rating
    profile["last_snapshot_id"] = snapshot_id
    # keep the freshest identity details
    if entry.get("user_id") is not None:
        profile["user_id"] = entry["user_id"]
    if entry.get("nickname"):
        profile["nickname"] = entry["nickname"]


class HistoryReconciler:
    """
    Replays closed cups of one track, oldest first, into per-player profiles.

    Each snapshot goes through three idempotent steps:
      1. winner = first qualified entry in position order;
      2. new ratings from the ratings right before the snapshot, written to
         every entry as elo_after (the "processed" marker);
      3. every profile whose last_snapshot_id is older than the snapshot gets
         the result folded in and is upserted.
    Re-running after a crash between any two steps converges to the same state.
    """

    def __init__(self, store, eligibility, track: str = TRACK_RATING,
                 k: float = K_FACTOR, default: int = DEFAULT_ELO):
        self.store = store
        self.eligibility = eligibility
        self.track = track
        self.k = k
        self.default = default

    # ---------- loading ----------

    def _load_history(self) -> Tuple[List[Dict[str, Any]], Dict[int, List[Dict[str, Any]]]]:
        snapshots = self.store.select_all(
            history_snapshots, {"track": self.track}, order_by=["closed_at", "snapshot_id"],
        )
        entries: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        if snapshots:
            rows = self.store.select_all(
                history_entries,
                {"snapshot_id": [s["snapshot_id"] for s in snapshots]},
                order_by=["snapshot_id", "position"],
            )
            for row in rows:
                entries[row["snapshot_id"]].append(row)
        return snapshots, entries

    def _keyed(self, resolver: IdentityResolver, entries: List[Dict[str, Any]]) -> List[Tuple[str, Dict[str, Any]]]:
        """(key, entry) per usable entry; ambiguous and duplicate entries are dropped."""
        keyed, seen = [], set()
        for entry in entries:
            try:
                # an entry keeps the identity it was first reconciled under
                key = entry.get("player_key") or resolver.resolve(entry)
            except DataIntegrityAmbiguity as exc:
                logger.warning(f"Skipping entry: {exc}")
                continue
            if key in seen:
                logger.warning(f"Snapshot {entry['snapshot_id']} lists {key} twice; keeping position "
                               f"{next(e['position'] for k, e in keyed if k == key)}")
                continue
            seen.add(key)
            keyed.append((key, entry))
        return keyed

    def _winner_key(self, keyed: List[Tuple[str, Dict[str, Any]]]) -> Optional[str]:
        winner = self.eligibility.find_winner([e for _, e in keyed])
        if winner is None:
            return None
        return next(k for k, e in keyed if e is winner)

    # ---------- writing ----------

    def _write_profiles(self, profiles: Iterable[Dict[str, Any]]) -> int:
        rows = [{k: v for k, v in p.items() if k != "id"} for p in profiles]
        return self.store.upsert(player_profiles, rows, ["track", "player_key"])

    def _record_suspected_bans(self) -> None:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        rows = [
            {"user_id": uid, "nickname": nick, "reason": "live stats fetch failed", "detected_at": now}
            for uid, nick in self.eligibility.suspected_banned.items()
        ]
        if rows:
            self.store.upsert(suspected_bans, rows, ["user_id"])

    # ---------- public ----------

    def reconcile(self) -> Dict[str, int]:
        """Process newly closed cups; already marked cups only feed the baseline."""
        snapshots, entries = self._load_history()
        profiles = {
            p["player_key"]: p
            for p in self.store.select_all(player_profiles, {"track": self.track})
        }
        resolver = IdentityResolver(profiles.values(), (e for rows in entries.values() for e in rows))
        order = {s["snapshot_id"]: i for i, s in enumerate(snapshots)}

        ratings: Dict[str, int] = {}
        stats = {"snapshots": 0, "profiles": 0}
        for snap in snapshots:
            sid = snap["snapshot_id"]
            keyed = self._keyed(resolver, entries[sid])
            if not keyed:
                continue

            if is_processed(e for _, e in keyed):
                after = {k: e["elo_after"] for k, e in keyed}
            else:
                after = propagate([(k, e["score"]) for k, e in keyed], ratings, k=self.k, default=self.default)
                for key, entry in keyed:
                    self.store.update(history_entries, {"id": entry["id"]}, {"elo_after": after[key], "player_key": key})
                stats["snapshots"] += 1
                logger.info(f"{self.track} snapshot {sid} ({snap['closed_at']}) rated, {len(keyed)} players")
            ratings.update({k: after[k] for k, _ in keyed})

            pending = [
                (k, e) for k, e in keyed
                if k not in profiles
                or profiles[k]["last_snapshot_id"] not in order
                or order[profiles[k]["last_snapshot_id"]] < order[sid]
            ]
            if not pending:
                continue
            winner = self._winner_key(keyed)
            if winner is None:
                logger.info(f"{self.track} snapshot {sid} has no qualified winner")
            for key, entry in pending:
                profile = profiles.setdefault(key, new_profile(self.track, key, entry))
                fold(profile, entry, after[key], key == winner, sid)
            stats["profiles"] += self._write_profiles(profiles[k] for k, _ in pending)

        self._record_suspected_bans()
        return stats

    def rebuild(self, player_keys: Optional[Set[str]] = None) -> Dict[str, int]:
        """
        Recompute profiles from the whole history.

        With no `player_keys`, every profile of the track is dropped, every
        marker cleared, and `reconcile` runs from the first cup. With a
        subset, the history is replayed in memory and only those profiles
        are written; markers and other players stay as they are.
        """
        if player_keys is None:
            self.store.delete_where(player_profiles, {"track": self.track})
            snapshots, _ = self._load_history()
            if snapshots:
                self.store.update(
                    history_entries,
                    {"snapshot_id": [s["snapshot_id"] for s in snapshots]},
                    {"elo_after": None, "player_key": None},
                )
            return self.reconcile()

        snapshots, entries = self._load_history()
        existing = self.store.select_all(player_profiles, {"track": self.track})
        resolver = IdentityResolver(existing, (e for rows in entries.values() for e in rows))
        ratings: Dict[str, int] = {}
        profiles: Dict[str, Dict[str, Any]] = {}
        for snap in snapshots:
            sid = snap["snapshot_id"]
            keyed = self._keyed(resolver, entries[sid])
            if not keyed:
                continue
            ratings = propagate([(k, e["score"]) for k, e in keyed], ratings, k=self.k, default=self.default)
            wanted = [(k, e) for k, e in keyed if k in player_keys]
            if not wanted:
                continue
            winner = self._winner_key(keyed)
            for key, entry in wanted:
                profile = profiles.setdefault(key, new_profile(self.track, key, entry))
                fold(profile, entry, ratings[key], key == winner, sid)

        written = self._write_profiles(profiles.values())
        self._record_suspected_bans()
        return {"snapshots": len(snapshots), "profiles": written}
