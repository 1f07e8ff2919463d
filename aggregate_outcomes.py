#!/usr/bin/env python3
"""
aggregate_outcomes.py

Aggregate game outcomes from PGN line streams into (month, opening, white bucket,
black bucket) -> Counter maps.

- Games are buffered into batches of cfg.batch_size.
- Each full batch (and the final partial one) is split into one share per worker;
  every worker builds a private map and the shares are merged pairwise, then folded
  into the running map. No state is shared while workers run.
- Because Counter addition is associative and commutative, the result does not
  depend on batch size, worker count, or which worker finishes first.

The CSV format written here is the one the remote ingest uses for per-month output.
"""

from __future__ import annotations

import csv
import io
import logging
import sys
from concurrent.futures import Executor, ProcessPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, TextIO, Tuple

import zstandard as zstd

from outcome_model import AggMap, build_map, merge_into, merge_maps, sorted_items
from pgn_headers import split_games
from settings import Config, RunContext

CSV_HEADER = [
    "month",
    "opening",
    "white_bucket",
    "black_bucket",
    "games",
    "white_wins",
    "black_wins",
    "draws",
    "white_pct",
    "black_pct",
    "draw_pct",
]

logger = logging.getLogger(__name__)


# ----------------------------
# Batched parallel aggregation
# ----------------------------

def split_shares(batch: Sequence[List[str]], parts: int) -> List[Sequence[List[str]]]:
    """Split a batch into at most `parts` contiguous, non-empty shares."""
    n = len(batch)
    parts = max(1, min(parts, n))
    size, extra = divmod(n, parts)
    shares: List[Sequence[List[str]]] = []
    start = 0
    for i in range(parts):
        end = start + size + (1 if i < extra else 0)
        if end > start:
            shares.append(batch[start:end])
        start = end
    return shares


def build_share(share: Sequence[List[str]], bucket_size: int, key_mode: str) -> AggMap:
    # Runs inside a worker process; must stay a module-level function.
    return build_map(share, bucket_size, key_mode)


def reduce_maps(maps: List[AggMap]) -> AggMap:
    """Pairwise (tree) merge of worker-local maps."""
    if not maps:
        return {}
    level = maps
    while len(level) > 1:
        nxt: List[AggMap] = []
        for i in range(0, len(level) - 1, 2):
            nxt.append(merge_maps(level[i], level[i + 1]))
        if len(level) % 2:
            nxt.append(level[-1])
        level = nxt
    return level[0]


class BatchAggregator:
    """Feed raw game blocks with add(); call finish() for (map, games).

    Use as a context manager so the worker pool is shut down. With a single
    worker the batch is folded in the calling thread.
    """

    def __init__(self, cfg: Config, pool: Optional[Executor] = None) -> None:
        self.bucket_size = cfg.bucket_size
        self.key_mode = cfg.key_mode
        self.batch_size = max(1, cfg.batch_size)
        self.workers = cfg.resolved_workers()
        self.agg: AggMap = {}
        self.games = 0
        self.batches = 0
        self._batch: List[List[str]] = []
        self._pool = pool
        self._owns_pool = False

    def __enter__(self) -> BatchAggregator:
        if self._pool is None and self.workers > 1:
            self._pool = ProcessPoolExecutor(max_workers=self.workers)
            self._owns_pool = True
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_pool and self._pool is not None:
            self._pool.shutdown(wait=True, cancel_futures=True)
        self._pool = None
        self._owns_pool = False

    def add(self, game_lines: List[str]) -> None:
        self._batch.append(game_lines)
        if len(self._batch) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if not self._batch:
            return
        batch, self._batch = self._batch, []

        if self._pool is None or self.workers <= 1:
            batch_map = build_map(batch, self.bucket_size, self.key_mode)
        else:
            futures = [
                self._pool.submit(build_share, share, self.bucket_size, self.key_mode)
                for share in split_shares(batch, self.workers)
            ]
            batch_map = reduce_maps([f.result() for f in futures])

        merge_into(self.agg, batch_map)
        self.games += len(batch)
        self.batches += 1

    def finish(self) -> Tuple[AggMap, int]:
        self.flush()
        return self.agg, self.games


def aggregate_lines(
    lines: Iterable[str],
    cfg: Config,
    ctx: Optional[RunContext] = None,
    pool: Optional[Executor] = None,
) -> Tuple[AggMap, int]:
    """Split a line stream into games and aggregate them. Returns (map, total games)."""
    ctx = ctx or RunContext()
    with BatchAggregator(cfg, pool=pool) as ba:
        for game_lines in split_games(lines):
            ba.add(game_lines)
        agg, games = ba.finish()
        ctx.vlog("aggregate: %d games in %d batches, %d keys", games, ba.batches, len(agg))
    return agg, games


# ----------------------------
# Local input
# ----------------------------

@contextmanager
def open_pgn(path: str) -> Iterator[TextIO]:
    """Open a PGN source as text: '-' is stdin, '*.zst' is decompressed in-stream."""
    if path == "-":
        yield sys.stdin
        return

    p = Path(path)
    if p.suffix == ".zst":
        dctx = zstd.ZstdDecompressor(max_window_size=2**31)
        with p.open("rb") as fh, dctx.stream_reader(fh, read_across_frames=True) as reader, \
             io.TextIOWrapper(reader, encoding="utf-8", errors="replace", newline="\n") as text:
            yield text
        return

    with p.open("r", encoding="utf-8", errors="replace") as text:
        yield text


# ----------------------------
# Output
# ----------------------------

def write_csv(agg: AggMap, out_path: Path) -> None:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = out_path.with_suffix(out_path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8", newline="") as fh:
        w = csv.writer(fh)
        w.writerow(CSV_HEADER)
        for k, c in sorted_items(agg):
            wp, bp, dp = c.percentages()
            w.writerow([
                k.month,
                k.opening,
                k.white_bucket,
                k.black_bucket,
                c.games,
                c.white_wins,
                c.black_wins,
                c.draws,
                f"{wp:.3f}",
                f"{bp:.3f}",
                f"{dp:.3f}",
            ])
    tmp.replace(out_path)


def print_summary(agg: AggMap, top: int = 20, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    cols = [
        ("month", 8),
        ("opening", 24),
        ("white", 6),
        ("black", 6),
        ("games", 10),
        ("white%", 8),
        ("black%", 8),
        ("draw%", 8),
    ]
    fmt = " ".join([f"{{:{w}}}" for _, w in cols])

    print(fmt.format(*[c[0] for c in cols]), file=out)
    print(fmt.format(*["-" * c[1] for c in cols]), file=out)

    items = list(agg.items())
    items.sort(key=lambda kv: (-kv[1].games, kv[0]))
    if top:
        items = items[:top]

    for k, c in items:
        wp, bp, dp = c.percentages()
        print(
            fmt.format(
                k.month,
                k.opening[:24],
                str(k.white_bucket),
                str(k.black_bucket),
                str(c.games),
                f"{wp:.3f}",
                f"{bp:.3f}",
                f"{dp:.3f}",
            ),
            file=out,
        )
