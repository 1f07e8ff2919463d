#!/usr/bin/env python3
"""
outcome_stats.py

Win/draw/loss counts by month, opening and Elo buckets from Lichess PGN dumps.

Local mode (default): read PGN from stdin or from the given files (.pgn or .pgn.zst),
print the total number of games on stdout, optionally write a CSV and/or save to DB.

Remote mode (--ingest-remote): stream every monthly dump listed in list.txt,
oldest first, without storing the .zst. With --save, months already marked
'success' in the database are skipped and each month is upserted when done.

Usage examples:
  zstdcat lichess_db_standard_rated_2013-01.pgn.zst | python outcome_stats.py --out out/agg.csv
  python outcome_stats.py lichess_db_standard_rated_2013-01.pgn.zst --top 20
  DATABASE_URL=sqlite:data/lichess.db python outcome_stats.py --ingest-remote --save --until 2013-06
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from aggregate_outcomes import aggregate_lines, open_pgn, print_summary, write_csv
from outcome_db import OutcomeStore, StoreError, connect
from outcome_model import AggMap, merge_into, slice_totals, total_games
from pgn_headers import KEY_MODES
from remote_ingest import run_remote
from settings import Config, RunContext, database_url, load_config

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Aggregate game outcomes by month, opening and Elo buckets."
    )
    ap.add_argument(
        "paths",
        nargs="*",
        help="Local PGN files (.pgn or .pgn.zst). If omitted, reads stdin.",
    )
    ap.add_argument("--ingest-remote", action="store_true", help="Stream monthly dumps listed in list.txt.")
    ap.add_argument("--save", action="store_true", help="Upsert results into DATABASE_URL.")
    ap.add_argument(
        "--out",
        "-o",
        type=Path,
        default=None,
        help="CSV output. Remote mode: a directory (one <month>.csv each) or a base file (<stem>-<month>.<ext>).",
    )
    ap.add_argument("--since", default=None, help="Remote mode: first month to ingest (inclusive).")
    ap.add_argument("--until", default=None, help="Remote mode: last month to ingest (inclusive).")
    ap.add_argument("--list-url", default=None, help="Override the list.txt endpoint.")
    ap.add_argument("--config", type=Path, default=None, help="Config file (default: ./config.toml).")
    ap.add_argument("--workers", type=int, default=None, help="Worker processes per batch (default: CPU count).")
    ap.add_argument("--batch-size", type=int, default=None, help="Games per parallel batch.")
    ap.add_argument("--bucket-size", type=int, default=None, help="Elo bucket width.")
    ap.add_argument("--key-mode", choices=KEY_MODES, default=None, help="Opening label scheme.")
    ap.add_argument("--top", type=int, default=0, help="Print the top N keys by games (0=off).")
    ap.add_argument(
        "--slice-opening",
        default=None,
        help=(
            "Report totals for labels containing this text (case-insensitive). "
            "With --key-mode eco labels are ranges like B20-B99; use --key-mode opening to match names."
        ),
    )
    ap.add_argument("--slice-white", type=int, default=None, help="Restrict the slice to this white bucket.")
    ap.add_argument("--slice-black", type=int, default=None, help="Restrict the slice to this black bucket.")
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging.")
    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    return load_config(args.config).with_overrides(
        worker_count=args.workers,
        batch_size=args.batch_size,
        bucket_size=args.bucket_size,
        key_mode=args.key_mode,
    )


def open_store(ctx: RunContext) -> OutcomeStore:
    store = connect(database_url())
    store.migrate()
    ctx.vlog("db: connected (%s)", store.backend.value)
    return store


def print_slice(agg: AggMap, args: argparse.Namespace) -> None:
    total = slice_totals(
        agg,
        opening_contains=args.slice_opening,
        white_bucket=args.slice_white,
        black_bucket=args.slice_black,
    )
    wp, bp, dp = total.percentages()
    print(
        f"slice opening~{args.slice_opening!r} white={args.slice_white} black={args.slice_black}: "
        f"white={wp:.3f}% black={bp:.3f}% draw={dp:.3f}% (n={total.games})"
    )


def run_local(args: argparse.Namespace, cfg: Config, ctx: RunContext) -> int:
    logger.info("Local ingest starting...")
    sources = args.paths or ["-"]

    agg: AggMap = {}
    total = 0
    for src in sources:
        t0 = time.monotonic()
        with open_pgn(src) as text:
            part, games = aggregate_lines(text, cfg, ctx=ctx)
        merge_into(agg, part)
        total += games
        if src != "-":
            print(f"{Path(src).name} | {time.monotonic() - t0:.3f}s | games={games}", file=sys.stderr, flush=True)

    if args.save:
        store = open_store(ctx)
        try:
            n_rows = store.upsert_aggregates(agg)
            ctx.vlog("db: upserted %d rows (%d games)", n_rows, total_games(agg))
        finally:
            store.close()

    if args.out is not None:
        write_csv(agg, args.out)
        ctx.vlog("csv: wrote %s", args.out)

    if args.top:
        print_summary(agg, top=args.top)
    if args.slice_opening or args.slice_white is not None or args.slice_black is not None:
        print_slice(agg, args)

    print(total)
    logger.info("Local ingest completed.")
    return 0


def run_remote_mode(args: argparse.Namespace, cfg: Config, ctx: RunContext) -> int:
    logger.info("Remote ingest starting...")
    store: Optional[OutcomeStore] = open_store(ctx) if args.save else None
    try:
        outcomes = run_remote(
            cfg,
            since=args.since,
            until=args.until,
            store=store,
            out=args.out,
            list_url=args.list_url,
            ctx=ctx,
        )
    finally:
        if store is not None:
            store.close()

    n = len(outcomes)
    logger.info("Remote ingest completed (%d month%s).", n, "" if n == 1 else "s")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s: %(message)s",
    )
    ctx = RunContext(verbose=args.verbose)

    try:
        cfg = build_config(args)
    except ValueError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2

    try:
        if args.ingest_remote:
            return run_remote_mode(args, cfg, ctx)
        return run_local(args, cfg, ctx)
    except StoreError as e:
        print(f"db error: {e}", file=sys.stderr)
        return 2
    except FileNotFoundError as e:
        print(f"input not found: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        logger.error("Ingest failed: %s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
