# eco_groups.py
# -----------------------------------------------------------------------------
# Map ECO codes (e.g. "B45") to opening-family labels (e.g. "B20-B99").
#
# Codes are linearized as letter_index * 100 + number (A00 -> 0, E99 -> 499)
# and looked up in a static table of closed, contiguous ranges.
# Missing or malformed codes map to "U00".
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import List, Optional, Tuple

UNKNOWN_ECO = "U00"

ECO_LETTERS = "ABCDE"


def eco_index(letter: str, number: int) -> int:
    return ECO_LETTERS.index(letter) * 100 + number


def _r(start: str, end: str, label: str) -> Tuple[int, int, str]:
    return (
        eco_index(start[0], int(start[1:])),
        eco_index(end[0], int(end[1:])),
        label,
    )


# (start, end, label), inclusive on both ends, ordered by start.
ECO_RANGES: List[Tuple[int, int, str]] = [
    # A00-A99
    _r("A00", "A00", "A00"),          # Polish (Sokolsky)
    _r("A01", "A01", "A01"),          # Nimzovich-Larsen
    _r("A02", "A03", "A02-A03"),      # Bird's
    _r("A04", "A09", "A04-A09"),      # Reti
    _r("A10", "A39", "A10-A39"),      # English
    _r("A40", "A41", "A40-A41"),      # Queen's pawn
    _r("A42", "A42", "A42"),          # Modern (Averbakh)
    _r("A43", "A44", "A43-A44"),      # Old Benoni
    _r("A45", "A46", "A45-A46"),      # Queen's pawn game
    _r("A47", "A47", "A47"),          # Queen's Indian
    _r("A48", "A49", "A48-A49"),      # East Indian
    _r("A50", "A50", "A50"),          # Queen's pawn game
    _r("A51", "A52", "A51-A52"),      # Budapest
    _r("A53", "A55", "A53-A55"),      # Old Indian
    _r("A56", "A56", "A56"),          # Benoni
    _r("A57", "A59", "A57-A59"),      # Benko
    _r("A60", "A79", "A60-A79"),      # Modern Benoni
    _r("A80", "A99", "A80-A99"),      # Dutch
    # B00-B99
    _r("B00", "B00", "B00"),          # King's pawn opening
    _r("B01", "B01", "B01"),          # Scandinavian
    _r("B02", "B05", "B02-B05"),      # Alekhine
    _r("B06", "B06", "B06"),          # Modern (Robatsch)
    _r("B07", "B09", "B07-B09"),      # Pirc
    _r("B10", "B19", "B10-B19"),      # Caro-Kann
    _r("B20", "B99", "B20-B99"),      # Sicilian
    # C00-C99
    _r("C00", "C19", "C00-C19"),      # French
    _r("C20", "C20", "C20"),          # King's pawn game
    _r("C21", "C22", "C21-C22"),      # Centre game
    _r("C23", "C24", "C23-C24"),      # Bishop's opening
    _r("C25", "C29", "C25-C29"),      # Vienna
    _r("C30", "C39", "C30-C39"),      # King's gambit
    _r("C40", "C40", "C40"),          # King's knight opening
    _r("C41", "C41", "C41"),          # Philidor
    _r("C42", "C43", "C42-C43"),      # Petrov
    _r("C44", "C44", "C44"),          # King's pawn game
    _r("C45", "C45", "C45"),          # Scotch
    _r("C46", "C46", "C46"),          # Three knights
    _r("C47", "C49", "C47-C49"),      # Four knights
    _r("C50", "C50", "C50"),          # Italian game
    _r("C51", "C52", "C51-C52"),      # Evans gambit
    _r("C53", "C54", "C53-C54"),      # Giuoco Piano
    _r("C55", "C59", "C55-C59"),      # Two knights
    _r("C60", "C99", "C60-C99"),      # Ruy Lopez
    # D00-D99
    _r("D00", "D00", "D00"),          # Queen's pawn game
    _r("D01", "D01", "D01"),          # Richter-Veresov
    _r("D02", "D02", "D02"),          # Queen's pawn game
    _r("D03", "D03", "D03"),          # Torre
    _r("D04", "D05", "D04-D05"),      # Queen's pawn game (e3)
    _r("D06", "D06", "D06"),          # Queen's gambit
    _r("D07", "D09", "D07-D09"),      # Chigorin
    _r("D10", "D15", "D10-D15"),      # Slav
    _r("D16", "D16", "D16"),          # Slav accepted (Alapin)
    _r("D17", "D19", "D17-D19"),      # Slav, Czech
    _r("D20", "D29", "D20-D29"),      # Queen's gambit accepted
    _r("D30", "D42", "D30-D42"),      # Queen's gambit declined
    _r("D43", "D49", "D43-D49"),      # Semi-Slav
    _r("D50", "D69", "D50-D69"),      # QGD 4.Bg5
    _r("D70", "D79", "D70-D79"),      # Neo-Gruenfeld
    _r("D80", "D99", "D80-D99"),      # Gruenfeld
    # E00-E99
    _r("E00", "E00", "E00"),          # Queen's pawn game
    _r("E01", "E09", "E01-E09"),      # Catalan
    _r("E10", "E10", "E10"),          # Queen's pawn game
    _r("E11", "E11", "E11"),          # Bogo-Indian
    _r("E12", "E19", "E12-E19"),      # Queen's Indian
    _r("E20", "E59", "E20-E59"),      # Nimzo-Indian
    _r("E60", "E99", "E60-E99"),      # King's Indian
]


def parse_eco_code(code: str) -> Optional[int]:
    """Linearize a 3-character ECO code, or None when it is malformed."""
    s = code.strip().upper()
    if len(s) != 3:
        return None
    letter, digits = s[0], s[1:]
    if letter not in ECO_LETTERS:
        return None
    if not (digits.isascii() and digits.isdigit()):
        return None
    return eco_index(letter, int(digits))


def label_for_code(code: Optional[str]) -> str:
    if not code:
        return UNKNOWN_ECO
    num = parse_eco_code(code)
    if num is None:
        return UNKNOWN_ECO
    for start, end, label in ECO_RANGES:
        if start <= num <= end:
            return label
    return UNKNOWN_ECO
