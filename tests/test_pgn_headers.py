import io
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pgn_headers as ph  # noqa: E402


TWO_GAMES = """\
[Event "Rated Blitz game"]
[Site "https://lichess.org/aaa"]
[UTCDate "2013.01.01"]
[Result "1-0"]

1. e4 e5 1-0

[Event "Rated Bullet game"]
[Site "https://lichess.org/bbb"]
[Result "0-1"]

1. d4 d5 0-1
"""


def test_split_games_yields_each_game_with_all_its_lines():
    games = list(ph.split_games(io.StringIO(TWO_GAMES)))
    assert len(games) == 2
    assert games[0][0] == '[Event "Rated Blitz game"]'
    assert games[0][-2:] == ["1. e4 e5 1-0", ""]
    assert games[1][0] == '[Event "Rated Bullet game"]'
    assert games[1][-1] == "1. d4 d5 0-1"

    # Nothing dropped or reordered.
    flat = [line for g in games for line in g]
    assert flat == TWO_GAMES.splitlines()


def test_split_games_emits_last_game_without_trailing_marker():
    games = list(ph.split_games(['[Event "x"]\n', '[Result "1-0"]\n']))
    assert games == [['[Event "x"]', '[Result "1-0"]']]


def test_split_games_empty_input_yields_nothing():
    assert list(ph.split_games([])) == []


def test_split_games_only_event_tag_starts_a_game():
    lines = ['[Event "a"]', '[Site "s"]', "", "1. e4 *", '[Eventful "no"]', '[Event "b"]']
    games = list(ph.split_games(lines))
    assert len(games) == 2
    assert games[0][-1] == '[Eventful "no"]'
    assert games[1] == ['[Event "b"]']


def test_split_games_keeps_preamble_as_its_own_block():
    games = list(ph.split_games(["junk", '[Event "a"]']))
    assert games == [["junk"], ['[Event "a"]']]


def test_split_games_is_lazy():
    def source():
        yield '[Event "a"]'
        yield '[Event "b"]'
        raise AssertionError("read past the second game")

    it = ph.split_games(source())
    assert next(it) == ['[Event "a"]']


def test_parse_headers_reads_only_tag_lines():
    h = ph.parse_headers([
        '  [White "Alice"]  ',
        '[Black "Bob"]',
        "[Broken]",
        '[NoQuotes value]',
        "1. e4 e5",
        '[Opening "Sicilian Defense: Najdorf"]',
    ])
    assert h == {"White": "Alice", "Black": "Bob", "Opening": "Sicilian Defense: Najdorf"}


def test_month_prefers_utcdate_over_date():
    assert ph.month_from_headers({"UTCDate": "2024.03.15", "Date": "2020.01.01"}) == "2024-03"
    assert ph.month_from_headers({"Date": "2020.01.01"}) == "2020-01"


@pytest.mark.parametrize("headers", [
    {},
    {"Date": "2024-03-15"},
    {"Date": "????.??.??"},
    {"Date": "24.03.15"},
    {"UTCDate": "2024/03/15"},
    {"UTCDate": "20x4.03.15"},
])
def test_malformed_or_missing_dates_give_unknown(headers):
    assert ph.month_from_headers(headers) == ph.UNKNOWN_MONTH


def test_eco_mode_labels():
    assert ph.label_from_headers({"ECO": "B22", "Opening": "Sicilian"}, ph.KEY_MODE_ECO) == "B20-B99"
    assert ph.label_from_headers({"Opening": "Sicilian"}, ph.KEY_MODE_ECO) == "U00"
    assert ph.label_from_headers({"ECO": "?"}, ph.KEY_MODE_ECO) == "U00"


def test_opening_mode_labels():
    assert ph.label_from_headers({"ECO": "B22", "Opening": "Sicilian"}, ph.KEY_MODE_OPENING) == "Sicilian"
    assert ph.label_from_headers({"ECO": "B22"}, ph.KEY_MODE_OPENING) == "B22"
    assert ph.label_from_headers({}, ph.KEY_MODE_OPENING) == "Unknown"


def test_unknown_key_mode_raises():
    with pytest.raises(ValueError):
        ph.label_from_headers({}, "fuzzy")


def test_result_defaults_to_star():
    assert ph.result_from_headers({}) == "*"
    assert ph.result_from_headers({"Result": "1/2-1/2"}) == "1/2-1/2"


@pytest.mark.parametrize("value,expected", [
    ("2250", 2250),
    ("0", 0),
    (None, None),
    ("", None),
    ("?", None),
    ("-5", None),
    ("15.5", None),
])
def test_parse_elo(value, expected):
    assert ph.parse_elo(value) == expected
