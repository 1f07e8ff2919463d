# outcome_model.py
# -----------------------------------------------------------------------------
# Keyed outcome tallies.
#
# Key conventions (explicit):
# - AggKey = (month, opening label, white bucket, black bucket); ordering of
#   keys is month, then opening, then white bucket, then black bucket.
# - Counter.games counts every game, including results that are neither
#   "1-0", "0-1" nor "1/2-1/2" (those bump games only).
# - Counter addition is field-wise, so partial maps built in any order and
#   merged give exactly the same totals.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from pgn_headers import (
    KEY_MODE_ECO,
    label_from_headers,
    month_from_headers,
    parse_elo,
    parse_headers,
    result_from_headers,
)

DEFAULT_BUCKET_SIZE = 200

# Unrated players (and bucket_size == 0) land here.
NO_RATING_BUCKET = 0


@dataclass(frozen=True, order=True)
class AggKey:
    month: str
    opening: str
    white_bucket: int
    black_bucket: int


@dataclass
class Counter:
    games: int = 0
    white_wins: int = 0
    black_wins: int = 0
    draws: int = 0

    def add_result(self, result: str) -> None:
        self.games += 1
        if result == "1-0":
            self.white_wins += 1
        elif result == "0-1":
            self.black_wins += 1
        elif result == "1/2-1/2":
            self.draws += 1

    def merge(self, other: Counter) -> None:
        self.games += other.games
        self.white_wins += other.white_wins
        self.black_wins += other.black_wins
        self.draws += other.draws

    def __add__(self, other: Counter) -> Counter:
        out = self.copy()
        out.merge(other)
        return out

    def copy(self) -> Counter:
        return Counter(self.games, self.white_wins, self.black_wins, self.draws)

    @property
    def unclassified(self) -> int:
        return self.games - self.white_wins - self.black_wins - self.draws

    def percentages(self) -> Tuple[float, float, float]:
        """(white_pct, black_pct, draw_pct) over all games."""
        if self.games == 0:
            return 0.0, 0.0, 0.0
        g = float(self.games)
        return (
            self.white_wins / g * 100.0,
            self.black_wins / g * 100.0,
            self.draws / g * 100.0,
        )


AggMap = Dict[AggKey, Counter]


# ----------------------------
# Keys
# ----------------------------

def elo_bucket(elo: Optional[int], size: int = DEFAULT_BUCKET_SIZE) -> int:
    if elo is None or size <= 0:
        return NO_RATING_BUCKET
    return (elo // size) * size


def key_for_headers(
    headers: Dict[str, str],
    bucket_size: int = DEFAULT_BUCKET_SIZE,
    key_mode: str = KEY_MODE_ECO,
) -> AggKey:
    return AggKey(
        month=month_from_headers(headers),
        opening=label_from_headers(headers, key_mode),
        white_bucket=elo_bucket(parse_elo(headers.get("WhiteElo")), bucket_size),
        black_bucket=elo_bucket(parse_elo(headers.get("BlackElo")), bucket_size),
    )


def add_game(
    agg: AggMap,
    game_lines: List[str],
    bucket_size: int = DEFAULT_BUCKET_SIZE,
    key_mode: str = KEY_MODE_ECO,
) -> None:
    """Parse one raw game block and count its result under its key."""
    if not game_lines:
        return
    h = parse_headers(game_lines)
    key = key_for_headers(h, bucket_size, key_mode)
    c = agg.get(key)
    if c is None:
        c = Counter()
        agg[key] = c
    c.add_result(result_from_headers(h))


def build_map(
    games: Iterable[List[str]],
    bucket_size: int = DEFAULT_BUCKET_SIZE,
    key_mode: str = KEY_MODE_ECO,
) -> AggMap:
    agg: AggMap = {}
    for game_lines in games:
        add_game(agg, game_lines, bucket_size, key_mode)
    return agg


# ----------------------------
# Merge
# ----------------------------

def merge_into(acc: AggMap, other: AggMap) -> AggMap:
    """Fold `other` into `acc` in place (acc must be owned by the caller)."""
    for k, c in other.items():
        mine = acc.get(k)
        if mine is None:
            acc[k] = c.copy()
        else:
            mine.merge(c)
    return acc


def merge_maps(left: AggMap, right: AggMap) -> AggMap:
    """Pure merge: neither input is modified."""
    if len(right) > len(left):
        left, right = right, left
    out: AggMap = {k: c.copy() for k, c in left.items()}
    for k, c in right.items():
        out[k] = out[k] + c if k in out else c.copy()
    return out


def total_games(agg: AggMap) -> int:
    return sum(c.games for c in agg.values())


def sorted_items(agg: AggMap) -> List[Tuple[AggKey, Counter]]:
    return sorted(agg.items(), key=lambda kv: kv[0])


def slice_totals(
    agg: AggMap,
    opening_contains: Optional[str] = None,
    white_bucket: Optional[int] = None,
    black_bucket: Optional[int] = None,
) -> Counter:
    """Sum counters over every key matching the given filters."""
    needle = opening_contains.lower() if opening_contains else None
    total = Counter()
    for k, c in agg.items():
        if needle is not None and needle not in k.opening.lower():
            continue
        if white_bucket is not None and k.white_bucket != white_bucket:
            continue
        if black_bucket is not None and k.black_bucket != black_bucket:
            continue
        total.merge(c)
    return total
