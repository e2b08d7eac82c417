# ppcup/osu_client.py

import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import requests

from ppcup.config import Config
from ppcup.errors import ExternalFetchFailure
from ppcup.logger import setup_logger

logger = setup_logger(__name__)

# refresh this many seconds before the token actually expires
TOKEN_SLACK_SECONDS = 30


class UserStats(NamedTuple):
    user_id: int
    username: str
    avatar_url: str
    rating: float        # pp
    play_count: int


def parse_user(payload: Dict[str, Any]) -> UserStats:
    stats = payload.get("statistics") or {}
    return UserStats(
        user_id=int(payload["id"]),
        username=payload.get("username", ""),
        avatar_url=payload.get("avatar_url") or "",
        rating=float(stats.get("pp") or 0),
        play_count=int(stats.get("play_count") or 0),
    )


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """osu! timestamps -> naive UTC datetimes."""
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


class TokenCache:
    """
    Client-credentials bearer token shared by every caller in the process.
    Refreshed lazily just before expiry; the lock keeps concurrent callers
    from refreshing twice.
    """

    def __init__(self,
                 client_id: Optional[str] = None,
                 client_secret: Optional[str] = None,
                 base_url: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time):
        self.client_id = client_id or Config.OSU_CLIENT_ID
        self.client_secret = client_secret or Config.OSU_CLIENT_SECRET
        self.base_url = (base_url or Config.OSU_API_URL).rstrip("/")
        self.session = session or requests.Session()
        self.clock = clock
        self.token: Optional[str] = None
        self.expires_at: float = 0.0
        self._lock = threading.Lock()

    def _valid(self) -> bool:
        return self.token is not None and self.clock() < self.expires_at - TOKEN_SLACK_SECONDS

    def get(self) -> str:
        if self._valid():
            return self.token
        with self._lock:
            # another caller may have refreshed while we waited
            if self._valid():
                return self.token
            self._refresh()
            return self.token

    def invalidate(self) -> None:
        with self._lock:
            self.token = None
            self.expires_at = 0.0

    def _refresh(self) -> None:
        now = self.clock()
        try:
            resp = self.session.post(f"{self.base_url}/oauth/token", json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
                "scope": "public",
            })
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error(f"Could not obtain osu! access token: {exc}")
            raise ExternalFetchFailure(None, f"token request failed: {exc}") from exc
        self.token = data["access_token"]
        self.expires_at = now + float(data.get("expires_in", 0))
        logger.info("osu! access token refreshed")


class OsuClient:
    """The rating source: pp, play count and recent scores per osu! user."""

    def __init__(self,
                 tokens: TokenCache,
                 session: Optional[requests.Session] = None,
                 max_retries: Optional[int] = None,
                 backoff: Optional[float] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.tokens = tokens
        self.base_url = tokens.base_url
        self.session = session or tokens.session
        self.max_retries = Config.RATE_LIMIT_MAX_RETRIES if max_retries is None else max_retries
        self.backoff = Config.RATE_LIMIT_BACKOFF_SECONDS if backoff is None else backoff
        self.sleep = sleep

    def _get(self, path: str, user_id, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/api/v2{path}"
        delay = self.backoff
        reauthed = False
        attempt = 0
        while True:
            headers = {"Authorization": f"Bearer {self.tokens.get()}"}
            try:
                resp = self.session.get(url, headers=headers, params=params)
            except requests.RequestException as exc:
                raise ExternalFetchFailure(user_id, str(exc)) from exc

            if resp.status_code == 429 and attempt < self.max_retries:
                attempt += 1
                retry_after = resp.headers.get("Retry-After")
                wait = float(retry_after) if retry_after and retry_after.isdigit() else delay
                logger.warning(f"osu! rate limit hit for {path}; backing off {wait:.1f}s ({attempt}/{self.max_retries})")
                self.sleep(wait)
                delay = min(delay * 2, 300)
                continue
            if resp.status_code == 401 and not reauthed:
                # token revoked or expired early
                reauthed = True
                self.tokens.invalidate()
                continue
            if resp.status_code != 200:
                raise ExternalFetchFailure(user_id, f"HTTP {resp.status_code}")
            try:
                return resp.json()
            except ValueError as exc:
                raise ExternalFetchFailure(user_id, "invalid JSON") from exc

    def get_user_stats(self, user_id: int) -> UserStats:
        payload = self._get(f"/users/{user_id}/osu", user_id, params={"key": "id"})
        try:
            return parse_user(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalFetchFailure(user_id, f"unexpected payload: {exc}") from exc

    def get_user_recent_scores(self,
                               user_id: int,
                               map_id: Optional[int] = None,
                               since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Recent passes as dicts with map_id, score, pp and achieved_at,
        optionally narrowed to one beatmap and to scores set at/after `since`.
        """
        payload = self._get(
            f"/users/{user_id}/scores/recent", user_id,
            params={"mode": "osu", "include_fails": 0, "limit": 100},
        )
        scores = []
        for item in payload or []:
            beatmap = item.get("beatmap") or {}
            entry = {
                "map_id": beatmap.get("id"),
                "score": int(item.get("score") or 0),
                "pp": float(item["pp"]) if item.get("pp") is not None else None,
                "achieved_at": parse_timestamp(item.get("created_at")),
            }
            if map_id is not None and entry["map_id"] != map_id:
                continue
            if since is not None and (entry["achieved_at"] is None or entry["achieved_at"] < since):
                continue
            scores.append(entry)
        return scores

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> UserStats:
        """Trade an authorization code for the authorising user's profile."""
        try:
            token_resp = self.session.post(f"{self.base_url}/oauth/token", json={
                "client_id": self.tokens.client_id,
                "client_secret": self.tokens.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri or Config.REDIRECT_URI,
            })
            token_resp.raise_for_status()
            user_token = token_resp.json()["access_token"]
            me = self.session.get(
                f"{self.base_url}/api/v2/me",
                headers={"Authorization": f"Bearer {user_token}"},
            )
            me.raise_for_status()
            return parse_user(me.json())
        except (requests.RequestException, KeyError, ValueError) as exc:
            logger.error(f"Authorization failed: {exc}")
            raise ExternalFetchFailure(None, f"authorization failed: {exc}") from exc
