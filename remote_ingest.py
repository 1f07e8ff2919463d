#!/usr/bin/env python3
"""
remote_ingest.py

Plan and run the ingestion of monthly Lichess dumps straight from the network.

- build_plan() fetches the list.txt index (one archive URL per line), keeps lines
  ending in YYYY-MM.pgn.zst, sorts them oldest first, applies optional since/until
  bounds and drops months already ingested.
- stream_and_aggregate() GETs one archive, decompresses it incrementally and feeds
  the text through the batch aggregator. Only the current batch is ever in memory.
  Any HTTP or zstd failure propagates: there is no partial result.
- ingest_plan() processes plan items one at a time, in order, on a dedicated
  thread; with a store it writes start/finish markers around each month.
"""

from __future__ import annotations

import io
import logging
import re
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

import requests
import zstandard as zstd

from aggregate_outcomes import aggregate_lines, write_csv
from outcome_db import STATUS_FAILED, STATUS_SUCCESS, OutcomeStore
from outcome_model import AggMap
from settings import Config, RunContext

MONTH_URL_RE = re.compile(r"(\d{4}-\d{2})\.pgn\.zst$")
MONTH_SEP_RE = re.compile(r"[-/.]")

HTTP_TIMEOUT = (30, 300)  # (connect, read) seconds
ZSTD_MAX_WINDOW = 2**31

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanItem:
    month: str  # "YYYY-MM"
    url: str


@dataclass
class IngestOutcome:
    month: str
    agg: AggMap
    games: int
    elapsed_ms: int


# ----------------------------
# Planning
# ----------------------------

def normalize_month(s: Optional[str]) -> Optional[str]:
    """Accept 'YYYY-MM', 'YYYY-M', 'YYYY/MM', 'YYYY.MM'; return 'YYYY-MM' or None."""
    if s is None:
        return None
    parts = MONTH_SEP_RE.split(s.strip())
    if len(parts) < 2:
        return None
    y, m = parts[0], parts[1]
    if len(y) != 4 or not (y.isascii() and y.isdigit()):
        return None
    if not m or not (m.isascii() and m.isdigit()):
        return None
    mi = int(m)
    if not 1 <= mi <= 12:
        return None
    return f"{y}-{mi:02d}"


def parse_index(text: str) -> List[PlanItem]:
    """Index lines -> plan items, oldest first, one item per month (first URL wins)."""
    seen: Set[str] = set()
    items: List[PlanItem] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        m = MONTH_URL_RE.search(line)
        if m is None:
            continue
        month = m.group(1)
        if month in seen:
            continue
        seen.add(month)
        items.append(PlanItem(month=month, url=line))
    items.sort(key=lambda it: it.month)
    return items


def filter_plan(
    items: Iterable[PlanItem],
    since: Optional[str] = None,
    until: Optional[str] = None,
    done: Optional[Set[str]] = None,
    ctx: Optional[RunContext] = None,
) -> List[PlanItem]:
    ctx = ctx or RunContext()
    out = list(items)

    since_n = normalize_month(since)
    until_n = normalize_month(until)
    if since is not None and since_n is None:
        logger.warning("Ignoring unparsable since=%r", since)
    if until is not None and until_n is None:
        logger.warning("Ignoring unparsable until=%r", until)

    if since_n is not None:
        before = len(out)
        out = [it for it in out if it.month >= since_n]
        ctx.vlog("remote: filtered by since=%s -> %d items (was %d)", since_n, len(out), before)

    if until_n is not None:
        before = len(out)
        out = [it for it in out if it.month <= until_n]
        ctx.vlog("remote: filtered by until=%s -> %d items (was %d)", until_n, len(out), before)

    if done:
        before = len(out)
        out = [it for it in out if it.month not in done]
        ctx.vlog("remote: filtered already-ingested -> %d items (was %d)", len(out), before)

    return out


def fetch_index(
    list_url: str,
    session: Optional[requests.Session] = None,
    ctx: Optional[RunContext] = None,
) -> str:
    ctx = ctx or RunContext()
    http = session or requests.Session()
    ctx.vlog("remote: GET %s", list_url)
    t0 = time.monotonic()
    resp = http.get(list_url, timeout=HTTP_TIMEOUT)
    resp.raise_for_status()
    text = resp.text
    ctx.vlog("remote: index fetched in %.3fs (%d bytes)", time.monotonic() - t0, len(text))
    return text


def build_plan(
    list_url: str,
    since: Optional[str] = None,
    until: Optional[str] = None,
    done: Optional[Set[str]] = None,
    session: Optional[requests.Session] = None,
    ctx: Optional[RunContext] = None,
) -> List[PlanItem]:
    text = fetch_index(list_url, session=session, ctx=ctx)
    items = parse_index(text)
    (ctx or RunContext()).vlog("remote: months available = %d", len(items))
    return filter_plan(items, since=since, until=until, done=done, ctx=ctx)


# ----------------------------
# Streaming + aggregation
# ----------------------------

def stream_and_aggregate(
    url: str,
    cfg: Config,
    out_csv: Optional[Path] = None,
    session: Optional[requests.Session] = None,
    ctx: Optional[RunContext] = None,
) -> IngestOutcome:
    """HTTP GET -> zstd stream -> text lines -> batch aggregator."""
    ctx = ctx or RunContext()
    http = session or requests.Session()
    start = time.monotonic()

    ctx.vlog("remote: HTTP GET %s", url)
    with http.get(url, stream=True, timeout=HTTP_TIMEOUT) as resp:
        resp.raise_for_status()
        ctx.vlog("remote: HTTP connected in %.3fs", time.monotonic() - start)

        dctx = zstd.ZstdDecompressor(max_window_size=ZSTD_MAX_WINDOW)
        with dctx.stream_reader(resp.raw, read_across_frames=True) as reader, \
             io.TextIOWrapper(reader, encoding="utf-8", errors="replace", newline="\n") as text:
            ctx.vlog("remote: aggregation start")
            agg, games = aggregate_lines(text, cfg, ctx=ctx)
            ctx.vlog("remote: aggregation done; games=%d", games)

    if out_csv is not None:
        t_csv = time.monotonic()
        write_csv(agg, out_csv)
        ctx.vlog("remote: CSV written to %s in %.3fs", out_csv, time.monotonic() - t_csv)

    elapsed_ms = int((time.monotonic() - start) * 1000)
    month_m = MONTH_URL_RE.search(url)
    return IngestOutcome(
        month=month_m.group(1) if month_m else "",
        agg=agg,
        games=games,
        elapsed_ms=elapsed_ms,
    )


def monthly_out_path(base: Optional[Path], month: str) -> Optional[Path]:
    """Directory -> <dir>/<month>.csv; file -> <stem>-<month>.<ext>."""
    if base is None:
        return None
    base = Path(base)
    if base.is_dir():
        return base / f"{month}.csv"
    ext = base.suffix.lstrip(".") or "csv"
    return base.parent / f"{base.stem}-{month}.{ext}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ingest_plan(
    plan: List[PlanItem],
    cfg: Config,
    store: Optional[OutcomeStore] = None,
    out: Optional[Path] = None,
    session: Optional[requests.Session] = None,
    ctx: Optional[RunContext] = None,
    fetch: Optional[Callable[..., IngestOutcome]] = None,
) -> List[IngestOutcome]:
    """Process plan items strictly in order, stopping at the first failure.

    A failed month is marked 'failed' (never 'success') so a later run retries it.
    """
    ctx = ctx or RunContext()
    fetch = fetch or stream_and_aggregate
    done: List[IngestOutcome] = []

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest") as io_pool:
        for item in plan:
            if store is not None:
                store.mark_start(item.month, item.url, _now_iso())

            out_csv = monthly_out_path(out, item.month)
            t0 = time.monotonic()
            try:
                outcome = io_pool.submit(
                    fetch, item.url, cfg, out_csv=out_csv, session=session, ctx=ctx
                ).result()
                if store is not None:
                    n_rows = store.upsert_aggregates(outcome.agg)
                    ctx.vlog("remote: upserted %d rows for %s", n_rows, item.month)
                    store.mark_finish(
                        item.month, outcome.games, outcome.elapsed_ms, STATUS_SUCCESS, _now_iso()
                    )
            except Exception:
                logger.exception("Ingest failed for %s (%s)", item.month, item.url)
                if store is not None:
                    store.mark_finish(
                        item.month, 0, int((time.monotonic() - t0) * 1000), STATUS_FAILED, _now_iso()
                    )
                raise

            print(
                f"{item.month} | {outcome.elapsed_ms / 1000.0:.3f}s | games={outcome.games}",
                file=sys.stderr,
                flush=True,
            )
            done.append(outcome)

    return done


def run_remote(
    cfg: Config,
    since: Optional[str] = None,
    until: Optional[str] = None,
    store: Optional[OutcomeStore] = None,
    out: Optional[Path] = None,
    list_url: Optional[str] = None,
    session: Optional[requests.Session] = None,
    ctx: Optional[RunContext] = None,
) -> List[IngestOutcome]:
    """Plan (skipping months the store marks done) then ingest."""
    ctx = ctx or RunContext()
    url = list_url or cfg.list_url
    done: Set[str] = store.done_months() if store is not None else set()
    ctx.vlog("remote: building plan from %s", url)
    plan = build_plan(url, since=since, until=until, done=done, session=session, ctx=ctx)
    ctx.vlog("remote: plan size after filters = %d", len(plan))
    if not plan:
        logger.info("No remote files to process.")
        return []
    return ingest_plan(plan, cfg, store=store, out=out, session=session, ctx=ctx)
