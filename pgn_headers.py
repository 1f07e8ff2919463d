# pgn_headers.py
# -----------------------------------------------------------------------------
# Headers-only PGN reading for large dumps.
#
# - split_games() carves a line stream into raw game blocks; a block starts at
#   an '[Event ' line and runs up to the next one (or end of input).
# - parse_headers() reads only '[Tag "Value"]' lines of a block.
# - The month/opening/result/elo helpers derive key fields from the headers.
#   Malformed values never raise; they degrade to sentinels.
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from eco_groups import UNKNOWN_ECO, label_for_code

GAME_START = "[Event "

UNKNOWN_MONTH = "unknown"
UNKNOWN_OPENING = "Unknown"
NO_RESULT = "*"

KEY_MODE_ECO = "eco"
KEY_MODE_OPENING = "opening"
KEY_MODES = (KEY_MODE_ECO, KEY_MODE_OPENING)


# ----------------------------
# Game splitting
# ----------------------------

def is_game_start(line: str) -> bool:
    return line.startswith(GAME_START)


def split_games(lines: Iterable[str]) -> Iterator[List[str]]:
    """Yield one game block (list of lines, line terminators removed) at a time.

    Every input line lands in exactly one block, in order. Lines seen before
    the first '[Event ' marker form a block of their own.
    """
    current: List[str] = []
    for line in lines:
        line = line.rstrip("\r\n")
        if is_game_start(line) and current:
            yield current
            current = []
        current.append(line)
    if current:
        yield current


# ----------------------------
# Header parsing
# ----------------------------

def _parse_header_line(line: str) -> Optional[Tuple[str, str]]:
    line = line.strip()
    if not (line.startswith("[") and line.endswith("]")):
        return None
    inner = line[1:-1].strip()
    if " " not in inner:
        return None
    key, rest = inner.split(" ", 1)
    rest = rest.strip()
    if len(rest) < 2 or rest[0] != '"' or rest[-1] != '"':
        return None
    return key, rest[1:-1]


def parse_headers(game_lines: Iterable[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for line in game_lines:
        parsed = _parse_header_line(line)
        if parsed:
            k, v = parsed
            headers[k] = v
    return headers


# ----------------------------
# Derived fields
# ----------------------------

def _ascii_digits(s: str) -> bool:
    return s.isascii() and s.isdigit()


def month_from_headers(headers: Dict[str, str]) -> str:
    """'YYYY.MM.DD' from UTCDate (else Date) -> 'YYYY-MM', otherwise 'unknown'."""
    d = headers.get("UTCDate")
    if d is None:
        d = headers.get("Date")
    if d is None or len(d) < 8 or d[4] != "." or d[7] != ".":
        return UNKNOWN_MONTH
    year, month = d[0:4], d[5:7]
    if not (_ascii_digits(year) and _ascii_digits(month)):
        return UNKNOWN_MONTH
    return f"{year}-{month}"


def eco_group_from_headers(headers: Dict[str, str]) -> str:
    eco = headers.get("ECO")
    if eco is None:
        return UNKNOWN_ECO
    return label_for_code(eco)


def opening_from_headers(headers: Dict[str, str]) -> str:
    opening = (headers.get("Opening") or "").strip()
    if opening:
        return opening
    eco = (headers.get("ECO") or "").strip()
    if eco:
        return eco
    return UNKNOWN_OPENING


def label_from_headers(headers: Dict[str, str], key_mode: str = KEY_MODE_ECO) -> str:
    if key_mode == KEY_MODE_ECO:
        return eco_group_from_headers(headers)
    if key_mode == KEY_MODE_OPENING:
        return opening_from_headers(headers)
    raise ValueError(f"Unknown key mode: {key_mode!r} (expected one of {KEY_MODES})")


def result_from_headers(headers: Dict[str, str]) -> str:
    return headers.get("Result", NO_RESULT)


def parse_elo(tag_value: Optional[str]) -> Optional[int]:
    if not tag_value or not _ascii_digits(tag_value):
        return None
    return int(tag_value)
