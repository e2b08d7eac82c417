# pipeline.py

import argparse
import sys
import time

from ppcup import pool, storage, tournament
from ppcup.config import Config
from ppcup.db import SessionLocal, init_db
from ppcup.eligibility import EligibilityFilter
from ppcup.errors import PersistenceFailure
from ppcup.logger import setup_logger
from ppcup.models import TRACKS, player_profiles
from ppcup.osu_client import OsuClient, TokenCache
from ppcup.reconcile import HistoryReconciler
from ppcup.store import Store

logger = setup_logger("pipeline")


def run_refresh(store, source):
    tournament.refresh(store, source)
    pool.refresh(store, source)


def run_close(store):
    # a retry of the same cup finds its snapshot by the cup's opening time
    closed_at = tournament.utcnow()
    tournament.close(store, closed_at)
    pool.close(store, closed_at)


def run_reconcile(store, source, rebuild=False):
    # one filter per run so live play-count lookups are shared by both tracks
    eligibility = EligibilityFilter(source)
    for track in TRACKS:
        reconciler = HistoryReconciler(store, eligibility, track)
        result = reconciler.rebuild() if rebuild else reconciler.reconcile()
        logger.info(f"Reconciled {track}: {result}")


def run_loop(store, source):
    next_refresh = next_reconcile = 0.0
    while True:
        now = time.monotonic()
        try:
            if now >= next_refresh:
                run_refresh(store, source)
                next_refresh = now + Config.REFRESH_INTERVAL_SECONDS
            if now >= next_reconcile:
                run_reconcile(store, source)
                next_reconcile = now + Config.RECONCILE_INTERVAL_SECONDS
        except PersistenceFailure as exc:
            # retried on the next tick
            logger.error(f"Run failed: {exc}")
        time.sleep(max(1.0, min(next_refresh, next_reconcile) - time.monotonic()))


def main(argv=None):
    ap = argparse.ArgumentParser(description="pp cup scheduled jobs")
    ap.add_argument("command", choices=["refresh", "close", "reconcile", "rebuild", "export", "loop"])
    ap.add_argument("--out", default="profiles.csv", help="CSV path for `export`")
    args = ap.parse_args(argv)

    init_db()
    store = Store(SessionLocal)

    if args.command == "export":
        n = storage.save_profiles_to_csv(store.select_all(player_profiles), args.out)
        print(f"Saved {n} profiles to {args.out}")
        return 0

    if args.command == "close":
        try:
            run_close(store)
        except PersistenceFailure as exc:
            logger.error(f"Close failed: {exc}")
            return 1
        return 0

    Config.validate()
    source = OsuClient(TokenCache())
    try:
        if args.command == "refresh":
            run_refresh(store, source)
        elif args.command == "reconcile":
            run_reconcile(store, source)
        elif args.command == "rebuild":
            run_reconcile(store, source, rebuild=True)
        else:
            run_loop(store, source)
    except PersistenceFailure as exc:
        logger.error(f"{args.command} failed: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
