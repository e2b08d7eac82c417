# ppcup/api/deps.py

from ppcup.cache import get_cache as _make_cache
from ppcup.db import SessionLocal
from ppcup.osu_client import OsuClient, TokenCache
from ppcup.store import Store

# one token cache and one response cache per process
_tokens = TokenCache()
_source = OsuClient(_tokens)
_cache = None


def get_store() -> Store:
    return Store(SessionLocal)


def get_rating_source() -> OsuClient:
    return _source


def get_cache():
    global _cache
    if _cache is None:
        _cache = _make_cache()
    return _cache
