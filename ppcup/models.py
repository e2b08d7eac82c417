# ppcup/models.py

from sqlalchemy import (
    Table, Column, Integer, String, DateTime, Float, ForeignKey, UniqueConstraint
)
from ppcup.db import metadata

TRACK_RATING = "rating"
TRACK_POOL = "pool"
TRACKS = (TRACK_RATING, TRACK_POOL)

# -------------------------------
# LIVE: the currently open cup
# -------------------------------
participants = Table(
    "participants",
    metadata,
    Column("user_id",       Integer, primary_key=True, autoincrement=False),
    Column("nickname",      String,  nullable=False),
    Column("avatar_url",    String,  nullable=False, default=""),
    Column("rating_start",  Float,   nullable=False),   # pp at registration
    Column("rating_end",    Float,   nullable=False),   # last observed pp
    Column("play_count",    Integer, nullable=True),
    Column("points",        Integer, nullable=False, default=0),
    Column("position",      Integer, nullable=True),
    Column("registered_at", DateTime, nullable=False),
)

# Fixed map set of the pool competition
pool_maps = Table(
    "pool_maps",
    metadata,
    Column("map_id", Integer, primary_key=True, autoincrement=False),
    Column("title",  String,  nullable=False, default=""),
)

pool_participants = Table(
    "pool_participants",
    metadata,
    Column("user_id",       Integer, primary_key=True, autoincrement=False),
    Column("nickname",      String,  nullable=False),
    Column("avatar_url",    String,  nullable=False, default=""),
    Column("rating_start",  Float,   nullable=False),
    Column("play_count",    Integer, nullable=True),
    Column("score",         Integer, nullable=False, default=0),  # sum of best scores
    Column("position",      Integer, nullable=True),
    Column("registered_at", DateTime, nullable=False),
)

# Best score per (user, pooled map)
pool_scores = Table(
    "pool_scores",
    metadata,
    Column("id",          Integer, primary_key=True, autoincrement=True),
    Column("user_id",     Integer, nullable=False, index=True),
    Column("map_id",      Integer, ForeignKey("pool_maps.map_id", ondelete="CASCADE"), nullable=False),
    Column("score",       Integer, nullable=False),
    Column("pp",          Float,   nullable=True),
    Column("achieved_at", DateTime, nullable=True),
    UniqueConstraint("user_id", "map_id", name="uq_pool_scores_user_map"),
)

# ----------------------------------------
# HISTORY: frozen copies of closed cups
# ----------------------------------------
history_snapshots = Table(
    "history_snapshots",
    metadata,
    Column("snapshot_id", Integer, primary_key=True, autoincrement=True),
    Column("track",       String,  nullable=False),     # 'rating' or 'pool'
    Column("opened_at",   DateTime, nullable=False),   # first registration of the cup
    Column("closed_at",   DateTime, nullable=False),
    UniqueConstraint("track", "opened_at", name="uq_snapshots_track_opened_at"),
)

history_entries = Table(
    "history_entries",
    metadata,
    Column("id",           Integer, primary_key=True, autoincrement=True),
    Column("snapshot_id",  Integer, ForeignKey("history_snapshots.snapshot_id", ondelete="CASCADE"), nullable=False, index=True),
    Column("position",     Integer, nullable=False),
    Column("user_id",      Integer, nullable=True),     # missing in the oldest cups
    Column("nickname",     String,  nullable=True),
    Column("avatar_url",   String,  nullable=True),
    Column("rating_start", Float,   nullable=True),
    Column("rating_end",   Float,   nullable=True),
    Column("play_count",   Integer, nullable=True),
    Column("score",        Integer, nullable=False, default=0),  # points or pool score
    Column("elo_after",    Integer, nullable=True),     # set once reconciled
    Column("player_key",   String,  nullable=True),     # identity it was reconciled under
    UniqueConstraint("snapshot_id", "position", name="uq_entries_snapshot_position"),
)

# ------------------------------------------------
# AGGREGATES: all-time standing per player/track
# ------------------------------------------------
player_profiles = Table(
    "player_profiles",
    metadata,
    Column("id",               Integer, primary_key=True, autoincrement=True),
    Column("track",            String,  nullable=False),
    Column("player_key",       String,  nullable=False),   # 'id:<user_id>' or 'nick:<lowercased>'
    Column("user_id",          Integer, nullable=True, index=True),
    Column("nickname",         String,  nullable=True),
    Column("rating",           Integer, nullable=False, default=1000),
    Column("participations",   Integer, nullable=False, default=0),
    Column("wins",             Integer, nullable=False, default=0),
    Column("total_points",     Integer, nullable=False, default=0),
    Column("best_position",    Integer, nullable=True),
    Column("last_snapshot_id", Integer, nullable=True),   # last snapshot folded in
    UniqueConstraint("track", "player_key", name="uq_profiles_track_player"),
)

suspected_bans = Table(
    "suspected_bans",
    metadata,
    Column("user_id",     Integer, primary_key=True, autoincrement=False),
    Column("nickname",    String,  nullable=True),
    Column("reason",      String,  nullable=True),
    Column("detected_at", DateTime, nullable=False),
)
