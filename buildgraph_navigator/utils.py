"""
Utility functions for BuildGraph Navigator
"""
import os
import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .exceptions import InvalidPositionError

_LINE_BREAK = re.compile(r'\r\n|\r|\n')

@dataclass(frozen=True)
class SourceSpan:
    """Half-open [start, end) character range within a document's text"""
    start: int
    end: int

    def contains(self, offset: int) -> bool:
        """True if offset touches the span (a cursor right after the last character still counts)"""
        return self.start <= offset <= self.end

    def encloses(self, other: 'SourceSpan') -> bool:
        return self.start <= other.start and other.end <= self.end

    def shifted(self, delta: int) -> 'SourceSpan':
        return SourceSpan(self.start + delta, self.end + delta)

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_range(self, text: str, starts: Optional[List[int]] = None) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """Convert to ((line, character), (line, character)), both 0-based"""
        if starts is None:
            starts = line_starts(text)
        return offset_to_position(text, self.start, starts), offset_to_position(text, self.end, starts)

def line_starts(text: str) -> List[int]:
    """Offsets at which each line of text begins"""
    starts = [0]
    for match in _LINE_BREAK.finditer(text):
        starts.append(match.end())
    return starts

def offset_to_position(text: str, offset: int, starts: Optional[List[int]] = None) -> Tuple[int, int]:
    """Convert a character offset into a 0-based (line, character) pair.

    Pass the line_starts() of text when converting many offsets.
    """
    offset = max(0, min(offset, len(text)))
    if starts is None:
        starts = line_starts(text)
    line = bisect_right(starts, offset) - 1
    return line, offset - starts[line]

def position_to_offset(text: str, line: int, character: int) -> int:
    """Convert a 0-based (line, character) pair into a character offset"""
    starts = line_starts(text)
    if line < 0 or line >= len(starts) or character < 0:
        raise InvalidPositionError(line, character)

    line_start, line_end = line_bounds(text, starts[line])
    if character > line_end - line_start:
        raise InvalidPositionError(line, character)
    return line_start + character

def line_bounds(text: str, offset: int) -> Tuple[int, int]:
    """Start and end offsets (line break excluded) of the line containing offset"""
    offset = max(0, min(offset, len(text)))
    start = max(text.rfind('\n', 0, offset), text.rfind('\r', 0, offset)) + 1
    end = len(text)
    for terminator in ('\r', '\n'):
        found = text.find(terminator, offset)
        if found != -1:
            end = min(end, found)
    return start, end

def line_span(text: str, offset: int) -> SourceSpan:
    start, end = line_bounds(text, offset)
    return SourceSpan(start, end)

def line_text_at(text: str, offset: int) -> str:
    start, end = line_bounds(text, offset)
    return text[start:end]

def normalize_path(path: str) -> str:
    """Canonical absolute form of a path, used as a file identifier.

    Purely lexical: no symlink resolution and no filesystem access.
    """
    return os.path.normpath(os.path.abspath(os.path.expanduser(path)))

def resolve_path(base_dir: str, relative_or_absolute: str) -> str:
    """Resolve an include path against the directory of the including file"""
    candidate = relative_or_absolute.strip()
    # Scripts authored on Windows use backslash separators
    if os.sep == '/':
        candidate = candidate.replace('\\', '/')
    if os.path.isabs(candidate):
        return normalize_path(candidate)
    return normalize_path(os.path.join(base_dir, candidate))

def script_dir(file_id: str) -> str:
    return os.path.dirname(file_id)
