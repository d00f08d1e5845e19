"""
Text helpers shared by segmentation and subtitle wrapping.

Both the rule-based segmenter and the subtitle wrapper cut long text with
`find_split_point`, so a number never loses its unit and a new line never
starts with closing punctuation, whichever of the two produced the break.

Punctuation policy: numeric punctuation is preserved. A `.`, `,` or `:`
between two digits stays (3.5, 1,000, 10:30) and `%`, `％`, `°`, `℃` stay;
every other punctuation mark is a split point and is then removed.
"""

from __future__ import annotations

import re

SPLIT_LOOKBACK = 8

CJK_RANGES = "\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff"
_CJK_THEN_ALNUM = re.compile(rf"([{CJK_RANGES}])([A-Za-z0-9])")
_ALNUM_THEN_CJK = re.compile(rf"([A-Za-z0-9])([{CJK_RANGES}])")

SENTENCE_PUNCT = set("。！？!?；;，,、：:.")
NUMERIC_JOINERS = set(".,:")
UNIT_SYMBOLS = set("%％°℃")
# Characters that must not open a new line.
NO_LINE_START = set("，。！？；：、）」』】》〉,.!?;:)]}…")
SOFT_BREAKS = set(" ，。！？；、")
WORD_JOINERS = set("-'")


def normalize_text(text: str) -> str:
    return " ".join(text.split()).strip()


def auto_spacing(text: str) -> str:
    """Insert a space at every CJK / ASCII-alphanumeric boundary."""
    text = _CJK_THEN_ALNUM.sub(r"\1 \2", text)
    text = _ALNUM_THEN_CJK.sub(r"\1 \2", text)
    return text.strip()


def is_ascii_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def _between_digits(text: str, idx: int) -> bool:
    return 0 < idx < len(text) - 1 and text[idx - 1].isdigit() and text[idx + 1].isdigit()


def _between_word_chars(text: str, idx: int) -> bool:
    return 0 < idx < len(text) - 1 and text[idx - 1].isalnum() and text[idx + 1].isalnum()


def split_on_punctuation(text: str) -> list[str]:
    """Split at sentence and clause punctuation, keeping numeric separators."""
    units: list[str] = []
    current: list[str] = []
    for idx, ch in enumerate(text):
        if ch in SENTENCE_PUNCT and not (ch in NUMERIC_JOINERS and _between_digits(text, idx)):
            units.append("".join(current))
            current = []
            continue
        current.append(ch)
    units.append("".join(current))
    return [u.strip() for u in units if u.strip()]


def clean_unit(text: str) -> str:
    kept: list[str] = []
    for idx, ch in enumerate(text):
        if ch.isalnum() or ch.isspace() or ch in UNIT_SYMBOLS:
            kept.append(" " if ch.isspace() else ch)
        elif ch in NUMERIC_JOINERS and _between_digits(text, idx):
            kept.append(ch)
        elif ch in WORD_JOINERS and _between_word_chars(text, idx):
            kept.append(ch)
    return normalize_text("".join(kept))


def _is_safe_boundary(text: str, pos: int) -> bool:
    prev, curr = text[pos - 1], text[pos]
    if is_ascii_alnum(prev) and is_ascii_alnum(curr):
        return False
    if curr in UNIT_SYMBOLS:
        return False
    if curr in NO_LINE_START:
        return False
    return True


def find_split_point(text: str, width: int, lookback: int = SPLIT_LOOKBACK) -> int:
    """
    Return the index at which `text` should be cut so the head fits `width`.

    Scans backward from the width boundary over at most `lookback` positions:
    first for a space or soft punctuation to break after, then for any safe
    boundary. Falls back to `width` itself when nothing safe is found.
    """
    if len(text) <= width:
        return len(text)
    floor = max(width - lookback, 0)
    for pos in range(width, floor, -1):
        if text[pos - 1] in SOFT_BREAKS and text[pos] not in NO_LINE_START:
            return pos
    for pos in range(width, floor, -1):
        if _is_safe_boundary(text, pos):
            return pos
    return width


def cut_to_width(text: str, width: int) -> list[str]:
    width = max(width, 1)
    pieces: list[str] = []
    rest = text.strip()
    while len(rest) > width:
        pos = find_split_point(rest, width)
        head = rest[:pos].strip()
        if head:
            pieces.append(head)
        rest = rest[pos:].strip()
    if rest:
        pieces.append(rest)
    return pieces


def join_units(left: str, right: str) -> str:
    if left[-1].isascii() or right[0].isascii():
        return f"{left} {right}"
    return left + right


def merge_short_units(units: list[str], width: int) -> list[str]:
    """Greedy single left-to-right pass joining neighbours that still fit."""
    merged: list[str] = []
    for unit in units:
        if merged:
            candidate = join_units(merged[-1], unit)
            if len(candidate) <= width:
                merged[-1] = candidate
                continue
        merged.append(unit)
    return merged


def split_script(script: str, max_len: int) -> list[str]:
    """Rule-based segmentation into subtitle lines of at most `max_len` characters."""
    clean = script.strip()
    if not clean:
        return []
    width = max(max_len, 1)
    pieces: list[str] = []
    for unit in split_on_punctuation(clean):
        unit = clean_unit(unit)
        if unit:
            pieces.extend(cut_to_width(unit, width))
    return merge_short_units(pieces, width)


def wrap_text(text: str, max_width: int) -> str:
    """Wrap one subtitle line for display; line breaks are `\\n`."""
    if max_width <= 0 or len(text) <= max_width:
        return text
    return "\n".join(cut_to_width(text, max_width))
