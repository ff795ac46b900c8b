"""Directory-listing scraper for cmios9 console output.

cmios9 prints its `dir` listing as a fixed-width table:

    fnr  name ...
    -------------
      1  FOO     .VC
      2  BARBAZ  .VC
    -------------

The output buffer accumulates everything the process printed since the last
read, so it may hold several listings, partial listings and unrelated chatter.
The scraper tokenizes the text into lines, recognises complete frames
(header, separator, at most `max_rows` rows, separator) and returns the entry
names of the newest one.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from loguru import logger

from .errors import ParseFailure

HEADER_TOKEN = "fnr"
ROW_PATTERN = r"[A-Za-z0-9\-\s.]*"
MAX_ROWS = 100
# Sample names are an 8 character name plus a 3 character extension (".VC").
NAME_WIDTH = 11

_SEPARATOR_RE = re.compile(r"-+-")
_NAME_EXT_RE = re.compile(r"(\S+?)\s*(\.\S+)$")


class LineKind(str, Enum):
    HEADER = "header"
    SEPARATOR = "separator"
    ROW = "row"
    OTHER = "other"


@dataclass
class DirectoryGrammar:
    header_token: str = HEADER_TOKEN
    row_pattern: str = ROW_PATTERN
    max_rows: int = MAX_ROWS
    _row_re: re.Pattern = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_rows < 0:
            raise ParseFailure(f"max_rows must be >= 0, got {self.max_rows}")
        try:
            self._row_re = re.compile(self.row_pattern)
        except re.error as e:
            raise ParseFailure(f"invalid row pattern {self.row_pattern!r}: {e}") from e

    def is_row(self, line: str) -> bool:
        return self._row_re.fullmatch(line) is not None

    def classify(self, line: str) -> LineKind:
        # Order matters: a dashed line also satisfies the row character set.
        if _SEPARATOR_RE.fullmatch(line):
            return LineKind.SEPARATOR
        if self.header_token in line:
            return LineKind.HEADER
        if self.is_row(line):
            return LineKind.ROW
        return LineKind.OTHER


@dataclass(frozen=True)
class Frame:
    header: str
    rows: Tuple[str, ...]
    # Index of the header line within the scanned text.
    line_no: int


def split_lines(text: str, newline: Optional[str] = None) -> List[str]:
    """Split on the host line terminator; the trailing terminator yields no line."""
    nl = newline if newline is not None else os.linesep
    if not text:
        return []
    lines = text.split(nl)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def tokenize(lines: List[str], grammar: DirectoryGrammar) -> List[Tuple[LineKind, str]]:
    return [(grammar.classify(line), line) for line in lines]


def _match_frame(
    tokens: List[Tuple[LineKind, str]],
    start: int,
    grammar: DirectoryGrammar,
) -> Optional[Tuple[Frame, int]]:
    """Try to read a frame whose header is tokens[start].

    Returns the frame and the index just past its closing separator, or None
    if the frame is truncated, overlong or interrupted by a foreign line.
    """
    if start + 1 >= len(tokens) or tokens[start + 1][0] is not LineKind.SEPARATOR:
        return None
    rows: List[str] = []
    i = start + 2
    while i < len(tokens):
        kind, line = tokens[i]
        if kind is LineKind.SEPARATOR:
            return Frame(header=tokens[start][1], rows=tuple(rows), line_no=start), i + 1
        # Inside a frame any line in the row character set is a row, even one
        # that happens to contain the header token.
        if not grammar.is_row(line) or len(rows) >= grammar.max_rows:
            return None
        rows.append(line)
        i += 1
    return None


def find_frames(
    text: str,
    grammar: Optional[DirectoryGrammar] = None,
    newline: Optional[str] = None,
) -> List[Frame]:
    """Return every complete listing frame in `text`, oldest first."""
    g = grammar or DirectoryGrammar()
    tokens = tokenize(split_lines(text, newline), g)
    frames: List[Frame] = []
    i = 0
    while i < len(tokens):
        if tokens[i][0] is LineKind.HEADER:
            found = _match_frame(tokens, i, g)
            if found is not None:
                frame, i = found
                frames.append(frame)
                continue
        i += 1
    return frames


def entry_name(row: str) -> str:
    """Extract the sample name from one listing row.

    `"  1  FOO     .VC"` -> `"FOO.VC"`. Rows without an extension fall back to
    the fixed-width field: the last 11 characters with padding removed.
    """
    s = row.strip()
    m = _NAME_EXT_RE.search(s)
    if m:
        name = m.group(1) + m.group(2)
    else:
        name = s[-NAME_WIDTH:].replace(" ", "")
    return name[-NAME_WIDTH:]


def scrape_directory(
    text: str,
    grammar: Optional[DirectoryGrammar] = None,
    newline: Optional[str] = None,
) -> List[str]:
    """Entry names of the newest complete listing in `text`; [] if none.

    Never raises: a grammar that cannot be evaluated is logged and treated as
    "no listing found".
    """
    try:
        frames = find_frames(text, grammar, newline)
    except (ParseFailure, re.error) as e:
        logger.opt(exception=e).error(f"Error parsing directory listing: {e}")
        return []
    if not frames:
        logger.debug("no directory listing found in cmios9 output")
        return []
    newest = frames[-1]
    return [entry_name(row) for row in newest.rows if row.strip()]

