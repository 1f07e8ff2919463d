import io
import random
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
import zstandard as zstd

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import aggregate_outcomes as agg_mod  # noqa: E402
from outcome_model import AggKey, Counter  # noqa: E402
from settings import Config  # noqa: E402


def make_pgn(n_games: int, seed: int = 3) -> str:
    rng = random.Random(seed)
    out = []
    for i in range(n_games):
        out.append('[Event "Rated Blitz game"]')
        out.append(f'[Site "https://lichess.org/g{i}"]')
        date = rng.choice(["2013.01.05", "2013.02.11", "2013-02-11", None])
        if date:
            out.append(f'[UTCDate "{date}"]')
        out.append(f'[Result "{rng.choice(["1-0", "0-1", "1/2-1/2", "*"])}"]')
        we = rng.choice(["1500", "1725", "2210", "?", None])
        if we:
            out.append(f'[WhiteElo "{we}"]')
        out.append(f'[BlackElo "{rng.randint(1200, 2400)}"]')
        out.append(f'[ECO "{rng.choice(["B22", "C00", "A45", "E99", "?"])}"]')
        out.append("")
        out.append("1. e4 e5 2. Nf3 *")
        out.append("")
    return "\n".join(out) + "\n"


SAMPLE = make_pgn(257)


def run(cfg: Config, pool=None):
    return agg_mod.aggregate_lines(io.StringIO(SAMPLE), cfg, pool=pool)


def test_single_batch_single_worker_counts_every_game():
    agg, games = run(Config(batch_size=10_000, worker_count=1))
    assert games == 257
    assert sum(c.games for c in agg.values()) == 257
    for c in agg.values():
        assert c.unclassified >= 0


@pytest.mark.parametrize("batch_size", [1, 2, 7, 100, 256, 257, 1000])
@pytest.mark.parametrize("workers", [1, 2, 5])
def test_result_independent_of_batch_size_and_worker_count(batch_size, workers):
    reference, ref_games = run(Config(batch_size=10_000, worker_count=1))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        agg, games = run(Config(batch_size=batch_size, worker_count=workers), pool=pool)
    assert games == ref_games
    assert agg == reference


def test_process_pool_matches_inline():
    reference, _ = run(Config(batch_size=10_000, worker_count=1))
    agg, games = run(Config(batch_size=50, worker_count=2))
    assert games == 257
    assert agg == reference


def test_batches_are_flushed_at_batch_size():
    with agg_mod.BatchAggregator(Config(batch_size=100, worker_count=1)) as ba:
        for i in range(250):
            ba.add(['[Event "x"]', '[Result "1-0"]'])
        assert ba.batches == 2
        agg, games = ba.finish()
    assert ba.batches == 3
    assert games == 250
    assert agg == {AggKey("unknown", "U00", 0, 0): Counter(250, 250, 0, 0)}


def test_split_shares_partitions_in_order():
    batch = [[str(i)] for i in range(10)]
    shares = agg_mod.split_shares(batch, 3)
    assert [len(s) for s in shares] == [4, 3, 3]
    assert [x for s in shares for x in s] == batch
    assert len(agg_mod.split_shares(batch[:2], 8)) == 2


def test_reduce_maps_handles_odd_counts():
    k = AggKey("2013-01", "U00", 0, 0)
    maps = [{k: Counter(1, 1, 0, 0)} for _ in range(5)]
    assert agg_mod.reduce_maps(maps) == {k: Counter(5, 5, 0, 0)}
    assert agg_mod.reduce_maps([]) == {}


def test_write_csv_sorted_with_percentages(tmp_path):
    agg = {
        AggKey("2013-02", "C00-C19", 1800, 2000): Counter(4, 1, 2, 1),
        AggKey("2013-01", "B20-B99", 2200, 2100): Counter(3, 3, 0, 0),
        AggKey("2013-01", 'Sicilian, "Najdorf"', 0, 0): Counter(1, 0, 0, 0),
    }
    out = tmp_path / "sub" / "agg.csv"
    agg_mod.write_csv(agg, out)
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(agg_mod.CSV_HEADER)
    assert lines[1] == "2013-01,B20-B99,2200,2100,3,3,0,0,100.000,0.000,0.000"
    assert lines[2] == '2013-01,"Sicilian, ""Najdorf""",0,0,1,0,0,0,0.000,0.000,0.000'
    assert lines[3] == "2013-02,C00-C19,1800,2000,4,1,2,1,25.000,50.000,25.000"
    assert not (tmp_path / "sub" / "agg.csv.tmp").exists()


def test_open_pgn_reads_plain_and_zst_files(tmp_path):
    plain = tmp_path / "games.pgn"
    plain.write_text(SAMPLE, encoding="utf-8")
    packed = tmp_path / "games.pgn.zst"
    packed.write_bytes(zstd.ZstdCompressor().compress(SAMPLE.encode("utf-8")))

    cfg = Config(batch_size=64, worker_count=1)
    with agg_mod.open_pgn(str(plain)) as text:
        a1, g1 = agg_mod.aggregate_lines(text, cfg)
    with agg_mod.open_pgn(str(packed)) as text:
        a2, g2 = agg_mod.aggregate_lines(text, cfg)
    assert g1 == g2 == 257
    assert a1 == a2


def test_print_summary_lists_top_keys(capsys):
    agg = {
        AggKey("2013-01", "B20-B99", 2200, 2100): Counter(3, 3, 0, 0),
        AggKey("2013-01", "C00-C19", 1800, 2000): Counter(9, 3, 3, 3),
    }
    agg_mod.print_summary(agg, top=1)
    out = capsys.readouterr().out.splitlines()
    assert out[0].split()[:2] == ["month", "opening"]
    assert len(out) == 3
    assert "C00-C19" in out[2]
    assert "33.333" in out[2]
