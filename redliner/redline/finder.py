"""
Literal match finding and occurrence selection over the flattened text.
"""

from dataclasses import dataclass
from typing import List, Optional

from redliner.models import SkipReason


@dataclass(frozen=True)
class Match:
    start: int
    end: int
    occurrence: int


def find_matches(buffer: str, find: str) -> List[Match]:
    """
    Leftmost-first, non-overlapping scan: after a hit, the search resumes at
    its end, so "aa" occurs twice in "aaaa".
    """
    matches: List[Match] = []
    if not find:
        return matches

    pos = buffer.find(find)
    while pos != -1:
        matches.append(Match(pos, pos + len(find), len(matches) + 1))
        pos = buffer.find(find, pos + len(find))
    return matches


def resolve_matches(matches: List[Match], occurrence: Optional[int] = None, select_all: bool = False) -> List[Match]:
    if not matches:
        return []
    if select_all:
        return list(matches)

    n = 1 if occurrence is None else occurrence
    if n < 1 or n > len(matches):
        return []
    return [matches[n - 1]]


def skip_reason(matches: List[Match], occurrence: Optional[int] = None, select_all: bool = False) -> Optional[SkipReason]:
    """Why resolve_matches() selects nothing, or None when it selects something."""
    if not matches:
        return SkipReason.NO_MATCHES
    if select_all or occurrence is None:
        return None
    if occurrence < 1:
        return SkipReason.INVALID_SELECTOR
    if occurrence > len(matches):
        return SkipReason.OUT_OF_RANGE
    return None
