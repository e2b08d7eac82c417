# ppcup/elo.py

from typing import Any, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from ppcup.config import Config
from ppcup.points import round_half_away

DEFAULT_ELO = Config.STARTING_ELO
K_FACTOR = Config.ELO_K_FACTOR


def expected_score(player_elo: float, opponent_elo: float) -> float:
    """Probability that `player` beats `opponent` under the logistic Elo model."""
    return 1 / (1 + 10 ** ((opponent_elo - player_elo) / 400))


def outcome(score: float, opponent_score: float) -> float:
    if score > opponent_score:
        return 1.0
    if score == opponent_score:
        return 0.5
    return 0.0


def rating_deltas(participants: Sequence[Tuple[Hashable, float]],
                  ratings: Dict[Hashable, int],
                  k: float = K_FACTOR,
                  default: int = DEFAULT_ELO) -> Dict[Hashable, float]:
    """
    Unrounded per-player change for one cup: every player is compared with
    every other one, K * sum(actual - expected), averaged over the N-1
    opponents. All comparisons read `ratings`, which is never written here.
    """
    n = len(participants)
    if n < 2:
        return {key: 0.0 for key, _ in participants}

    deltas = {}
    for key, score in participants:
        own = ratings.get(key, default)
        total = 0.0
        for other, other_score in participants:
            if other == key:
                continue
            opp = ratings.get(other, default)
            total += outcome(score, other_score) - expected_score(own, opp)
        deltas[key] = k * total / (n - 1)
    return deltas


def propagate(participants: Sequence[Tuple[Hashable, float]],
              ratings: Dict[Hashable, int],
              k: float = K_FACTOR,
              default: int = DEFAULT_ELO) -> Dict[Hashable, int]:
    """
    Ratings after one cup.

    Args:
        participants: (player key, score) pairs of one snapshot.
        ratings: ratings as they stood right before this snapshot; newcomers
            start at `default`.

    Returns:
        a new table: `ratings` with every participant's entry replaced by
        round(old + delta). The input table is left untouched.
    """
    deltas = rating_deltas(participants, ratings, k=k, default=default)
    updated = dict(ratings)
    for key, delta in deltas.items():
        updated[key] = round_half_away(ratings.get(key, default) + delta)
    return updated


def is_processed(entries: Iterable[Dict[str, Any]]) -> bool:
    """A snapshot is processed once every entry carries elo_after."""
    entries = list(entries)
    return bool(entries) and all(e.get("elo_after") is not None for e in entries)


def replay(snapshots: Iterable[Tuple[Any, Sequence[Tuple[Hashable, float]]]],
           ratings: Optional[Dict[Hashable, int]] = None,
           k: float = K_FACTOR,
           default: int = DEFAULT_ELO) -> Tuple[Dict[Hashable, int], List[Tuple[Any, Dict[Hashable, int]]]]:
    """
    Fold `propagate` over (snapshot_id, participants) pairs, oldest first.

    Returns:
        final ratings, and per snapshot the ratings of its participants
        right after it.
    """
    table = dict(ratings or {})
    history = []
    for snapshot_id, participants in snapshots:
        table = propagate(participants, table, k=k, default=default)
        history.append((snapshot_id, {key: table[key] for key, _ in participants}))
    return table, history
