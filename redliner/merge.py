"""
Merging edit lists written by several reviewers (or agents) into one.

Two edits conflict when they select the same match: same `find` and the same
occurrence, or both `all`. How a conflict is settled depends on the strategy:

- error:   nothing is merged and the conflicts are reported.
- first:   the edit seen first (file order, then list order) wins.
- last:    the edit seen last wins, in the place of the first one.
- combine: edits that replace the same text have their comments joined;
           any other conflict falls back to `first`.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import structlog

from redliner.config import load_edits
from redliner.errors import RedlinerError
from redliner.models import Edit

logger = structlog.get_logger(__name__)

COMMENT_SEPARATOR = "\n\n---\n\n"

MatchKey = Tuple[str, Union[int, str]]


class MergeStrategy(str, Enum):
    ERROR = "error"
    FIRST = "first"
    LAST = "last"
    COMBINE = "combine"


class MergeConflictError(RedlinerError):
    """Raised by the `error` strategy when two sources select the same match."""

    def __init__(self, conflicts: List["Conflict"]):
        self.conflicts = conflicts
        super().__init__(f"{len(conflicts)} conflict(s) detected. Use another conflict strategy or resolve them by hand.")


@dataclass
class Conflict:
    key: MatchKey
    edits: List[Edit]
    sources: List[int]
    resolution: Optional[str] = None

    def describe(self) -> str:
        find, selector = self.key
        selector = "all" if selector == "all" else f"occurrence={selector}"
        return f"{find!r} ({selector}): {len(self.edits)} conflicting edits from sources {self.sources}"


@dataclass
class MergeResult:
    edits: List[Edit] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    source_count: int = 0
    strategy: MergeStrategy = MergeStrategy.ERROR

    def to_payload(self, sources: Optional[Sequence[str]] = None) -> dict:
        """JSON edits payload; the merge details ride along as an ignored key."""
        return {
            "merge_info": {
                "sources": list(sources) if sources is not None else self.source_count,
                "strategy": self.strategy.value,
                "conflicts_resolved": len(self.conflicts),
            },
            "edits": [e.model_dump(exclude_defaults=True) for e in self.edits],
        }


def match_key(edit: Edit) -> MatchKey:
    """The match an edit selects. A missing occurrence means the first one."""
    if edit.all:
        return edit.find, "all"
    return edit.find, 1 if edit.occurrence is None else edit.occurrence


def _combine_comments(first: Optional[str], second: Optional[str]) -> Optional[str]:
    parts = [c for c in (first, second) if c]
    return COMMENT_SEPARATOR.join(parts) if parts else None


def merge_edit_lists(
    sources: Sequence[Sequence[Edit]], strategy: Union[MergeStrategy, str] = MergeStrategy.ERROR
) -> MergeResult:
    """
    Merges the edit lists in order. Edits that do not conflict keep their
    relative order; the merged list is applied like any other.
    """
    strategy = MergeStrategy(strategy)
    result = MergeResult(source_count=len(sources), strategy=strategy)

    # key -> (position in result.edits, source that placed it)
    seen: Dict[MatchKey, Tuple[int, int]] = {}
    open_conflicts: Dict[MatchKey, Conflict] = {}

    for source_index, edits in enumerate(sources):
        for edit in edits:
            key = match_key(edit)
            if key not in seen:
                seen[key] = (len(result.edits), source_index)
                result.edits.append(edit)
                continue

            position, first_source = seen[key]
            existing = result.edits[position]

            conflict = open_conflicts.get(key)
            if conflict is None:
                conflict = Conflict(key=key, edits=[existing], sources=[first_source])
                open_conflicts[key] = conflict
                result.conflicts.append(conflict)
            conflict.edits.append(edit)
            conflict.sources.append(source_index)

            if strategy == MergeStrategy.LAST:
                result.edits[position] = edit
                conflict.resolution = "last"
            elif strategy == MergeStrategy.COMBINE and existing.replace == edit.replace:
                result.edits[position] = existing.model_copy(
                    update={"comment": _combine_comments(existing.comment, edit.comment)}
                )
                conflict.resolution = "combined"
            elif strategy != MergeStrategy.ERROR and conflict.resolution is None:
                conflict.resolution = "first"

            logger.debug("Merge conflict", find=edit.find, source=source_index, resolution=conflict.resolution)

    if strategy == MergeStrategy.ERROR and result.conflicts:
        logger.warning("Merge failed", conflicts=len(result.conflicts))
        raise MergeConflictError(result.conflicts)

    logger.info(
        "Merged edits",
        sources=result.source_count,
        edits=len(result.edits),
        conflicts=len(result.conflicts),
        strategy=strategy.value,
    )
    return result


def merge_edit_files(paths: Sequence[Path], strategy: Union[MergeStrategy, str] = MergeStrategy.ERROR) -> MergeResult:
    return merge_edit_lists([load_edits(p) for p in paths], strategy)
