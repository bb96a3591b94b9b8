import getpass
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator, model_validator


# Characters XML 1.0 cannot carry. lxml refuses them once the text is set.
_XML_INVALID_CHARS = re.compile(r"[^\t\n\r\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


def ensure_xml_text(value: Optional[str]) -> Optional[str]:
    if value is not None:
        bad = _XML_INVALID_CHARS.search(value)
        if bad:
            raise ValueError(f"contains {bad.group()!r}, which cannot be stored in a document")
    return value


def default_author_name() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "Redliner"


class Author(BaseModel):
    """Person every tracked change of a session is attributed to."""

    name: str = Field(default_factory=default_author_name, min_length=1, description="Display name in Review Pane.")
    email: Optional[str] = Field(None, description="Stored as w15:userId when present.")

    @field_validator("name", "email")
    @classmethod
    def check_xml_text(cls, value: Optional[str]) -> Optional[str]:
        return ensure_xml_text(value)


class Edit(BaseModel):
    """
    Represents a single literal search-and-replace request.
    Each selected occurrence of `find` becomes a deletion/insertion pair.
    """

    model_config = ConfigDict(extra="forbid")

    find: str = Field(..., description="Literal text to find. Matching is case-sensitive and may cross runs.")

    replace: Optional[str] = Field(
        None,
        description="Replacement text. Empty string deletes. Omit together with 'comment' to only annotate.",
    )

    occurrence: Optional[StrictInt] = Field(
        None,
        description="1-based occurrence to change. Defaults to the first one.",
    )

    all: StrictBool = Field(False, description="Change every occurrence. Overrides 'occurrence'.")

    comment: Optional[str] = Field(
        None,
        description="Text to appear in a comment bubble (Review Pane) linked to this edit.",
    )

    @field_validator("replace", "comment")
    @classmethod
    def check_xml_text(cls, value: Optional[str]) -> Optional[str]:
        return ensure_xml_text(value)

    @model_validator(mode="after")
    def needs_replace_or_comment(self) -> "Edit":
        if self.replace is None and self.comment is None:
            raise ValueError("an edit needs 'replace', 'comment', or both")
        return self

    @property
    def comment_only(self) -> bool:
        return self.replace is None

    def describe(self) -> str:
        if self.all:
            selector = "all"
        elif self.occurrence is None:
            selector = "occurrence=1"
        else:
            selector = f"occurrence={self.occurrence}"
        return f"{self.find!r} ({selector})"


class EditConfig(BaseModel):
    """
    One patching session: source and target documents, the author and the
    ordered list of edits.
    """

    input: Optional[Path] = None
    output: Optional[Path] = None
    author: Author = Field(default_factory=Author)
    edits: List[Edit] = Field(default_factory=list)


class SkipReason(str, Enum):
    NO_MATCHES = "no matches found"
    OUT_OF_RANGE = "occurrence index out of range"
    INVALID_SELECTOR = "invalid occurrence selector"
    CROSSES_PARAGRAPH = "match spans a paragraph boundary"


@dataclass
class ChangeNode:
    """
    A deletion/insertion pair written for one match.
    `insertion` is None for a pure deletion, `deletions` is empty for a
    comment-only annotation.
    """

    revision_id: Optional[int]
    deletions: List[Any]
    insertion: Optional[Any]
    author: str
    email: Optional[str]
    date: str
    comment: Optional[str] = None
    comment_id: Optional[str] = None
    deleted_text: str = ""
    inserted_text: str = ""


@dataclass
class EditResult:
    index: int
    edit: Edit
    applied_count: int = 0
    reason: Optional[SkipReason] = None
    change_nodes: List[ChangeNode] = field(default_factory=list)
    comment_ids: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.applied_count == 0


@dataclass
class SessionResult:
    results: List[EditResult] = field(default_factory=list)

    @property
    def applied(self) -> int:
        return sum(1 for r in self.results if not r.skipped)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def change_nodes(self) -> List[ChangeNode]:
        return [node for r in self.results for node in r.change_nodes]
