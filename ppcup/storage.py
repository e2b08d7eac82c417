# ppcup/storage.py
from typing import Any, Dict, Iterable
import pandas as pd

PROFILE_COLUMNS = [
    'track', 'player_key', 'user_id', 'nickname', 'rating',
    'participations', 'wins', 'total_points', 'best_position',
]


def save_profiles_to_csv(profiles: Iterable[Dict[str, Any]], path: str) -> int:
    """
    Save player profiles to a CSV file, best rating first within each track.
    """
    df = pd.DataFrame(list(profiles), columns=PROFILE_COLUMNS)
    df = df.sort_values(['track', 'rating'], ascending=[True, False])
    df.to_csv(path, index=False)
    return len(df)


def load_ratings_from_csv(path: str, track: str) -> Dict[str, int]:
    """
    Load an exported CSV back into a {player_key: rating} dict for one track.
    """
    df = pd.read_csv(path)
    df = df[df['track'] == track]
    return {k: int(v) for k, v in zip(df['player_key'], df['rating'])}
