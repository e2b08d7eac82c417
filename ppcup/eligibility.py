# ppcup/eligibility.py

from typing import Any, Dict, Iterable, Optional

from ppcup.config import Config
from ppcup.errors import ExternalFetchFailure
from ppcup.logger import setup_logger

logger = setup_logger(__name__)


class EligibilityFilter:
    """
    Decides whether a history entry may be credited with a win.

    An entry qualifies when its starting pp reaches `min_rating` and the
    player has at least `min_play_count` plays. Older cups did not record
    play counts; for those the count is fetched live, once per user per
    instance. A failed fetch counts as 0 plays and the account is remembered
    in `suspected_banned`.
    """

    def __init__(self,
                 rating_source,
                 min_rating: Optional[float] = None,
                 min_play_count: Optional[int] = None):
        self.rating_source = rating_source
        self.min_rating = Config.ELIGIBILITY_MIN_RATING if min_rating is None else min_rating
        self.min_play_count = Config.ELIGIBILITY_MIN_PLAY_COUNT if min_play_count is None else min_play_count
        self.play_counts: Dict[int, int] = {}
        self.suspected_banned: Dict[int, Optional[str]] = {}

    def _live_play_count(self, user_id: int, nickname: Optional[str]) -> int:
        if user_id in self.play_counts:
            return self.play_counts[user_id]
        try:
            count = self.rating_source.get_user_stats(user_id).play_count
        except ExternalFetchFailure as exc:
            logger.warning(f"Suspected banned account {nickname} ({user_id}): {exc.reason}")
            self.suspected_banned[user_id] = nickname
            count = 0
        self.play_counts[user_id] = count
        return count

    def play_count(self, entry: Dict[str, Any]) -> int:
        count = entry.get("play_count") or 0
        rating_start = entry.get("rating_start") or 0
        user_id = entry.get("user_id")
        if count == 0 and rating_start > 0 and user_id is not None:
            count = self._live_play_count(user_id, entry.get("nickname"))
        return count

    def is_qualified(self, entry: Dict[str, Any]) -> bool:
        if (entry.get("rating_start") or 0) < self.min_rating:
            return False
        return self.play_count(entry) >= self.min_play_count

    def find_winner(self, entries: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """First qualified entry in position order, or None."""
        for entry in sorted(entries, key=lambda e: e["position"]):
            if self.is_qualified(entry):
                return entry
        return None
