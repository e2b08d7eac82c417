# ppcup/ranking.py

from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple


class RankEntry(NamedTuple):
    id: Any
    points: int
    registered_at: Optional[datetime]


def _sort_key(entry: RankEntry):
    # missing timestamps sort after every real one
    ts = entry.registered_at
    return (-entry.points, ts is None, ts or datetime.min, entry.id)


def assign_positions(entries: Iterable[RankEntry]) -> List[Tuple[Any, int]]:
    """
    Order by points (desc), then registration time (earlier wins), then id,
    and hand out positions 1..N. No two entries ever share a position.
    """
    ordered = sorted(entries, key=_sort_key)
    return [(e.id, i) for i, e in enumerate(ordered, start=1)]


def changed_positions(entries: Iterable[RankEntry],
                      current: Dict[Any, Optional[int]]) -> List[Tuple[Any, int]]:
    """Only the (id, position) pairs that differ from `current`."""
    return [
        (entry_id, pos)
        for entry_id, pos in assign_positions(entries)
        if current.get(entry_id) != pos
    ]
