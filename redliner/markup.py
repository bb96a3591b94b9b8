"""
Markdown edit lists: a table agents and reviewers can write by hand, converted
to and from the JSON edits payload.

    ## Metadata
    - **Author Name**: Jane Roe
    - **Author Email**: jane@example.com

    ## Edits Table
    | Id | Find | Occurrence | Comment |
    |----|------|------------|---------|
    | e1 | the Buyer | 2 | Rename the party |
    | e2 | Seller | all | - |

    ## Replacement Text

    ### e1 replace
    the Purchaser

The replacement of a row lives in its `### <id> replace` section; a section
with an empty body deletes. A row without a section is a comment-only edit.
Literal `|` inside a cell is written `\\|`. A find wrapped in backticks keeps
its surrounding spaces.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError

from redliner.models import Author, Edit

logger = structlog.get_logger(__name__)

HEADER_PATTERN = re.compile(r"^\|\s*Id\s*\|\s*Find\s*\|\s*Occurrence\s*\|\s*Comment\s*\|?\s*$", re.IGNORECASE)
SEPARATOR_PATTERN = re.compile(r"^\|[\s\-:|]+\|?$")
SECTION_PATTERN = re.compile(
    r"^###[ \t]+(\S+)[ \t]+replace[ \t]*(?:\n|\Z)(.*?)(?=^###[ \t]+\S+[ \t]+replace[ \t]*$|^##\s|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
CELL_SPLIT = re.compile(r"(?<!\\)\|")
EMPTY_CELL = "-"


@dataclass
class ParsedEdits:
    author: Optional[Author] = None
    edits: List[Edit] = field(default_factory=list)
    skipped_rows: List[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        """The JSON config shape accepted by --edits and --config."""
        payload: dict = {}
        if self.author is not None:
            payload["author"] = self.author.model_dump(exclude_none=True)
        payload["edits"] = [e.model_dump(exclude_defaults=True) for e in self.edits]
        return payload


def _metadata(markdown: str, label: str) -> Optional[str]:
    match = re.search(rf"\*\*{label}\*\*:[ \t]*(.+)", markdown, re.IGNORECASE)
    return match.group(1).strip() if match else None


def _split_cells(line: str) -> List[str]:
    cells = CELL_SPLIT.split(line.strip())
    # Leading and trailing pipes leave empty outer cells.
    if cells and not cells[0].strip():
        cells = cells[1:]
    if cells and not cells[-1].strip():
        cells = cells[:-1]
    return [c.strip().replace("\\|", "|") for c in cells]


def _unquote(cell: str) -> str:
    if len(cell) >= 2 and cell.startswith("`") and cell.endswith("`"):
        return cell[1:-1]
    return cell


def _parse_occurrence(value: str) -> Tuple[Optional[int], bool]:
    value = value.strip().lower()
    if value in ("", EMPTY_CELL):
        return None, False
    if value == "all":
        return None, True
    try:
        return int(value), False
    except ValueError:
        raise ValueError(f"occurrence must be a number or 'all', got {value!r}") from None


def _replacement_sections(markdown: str) -> Dict[str, str]:
    sections = {}
    for match in SECTION_PATTERN.finditer(markdown):
        # Only the blank lines that frame the section are dropped.
        sections[match.group(1)] = match.group(2).strip("\n")
    return sections


def _table_rows(markdown: str) -> List[str]:
    rows: List[str] = []
    in_table = False
    for line in markdown.splitlines():
        stripped = line.strip()
        if not in_table:
            in_table = bool(HEADER_PATTERN.match(stripped))
            continue
        if not stripped.startswith("|"):
            if rows or stripped:
                break
            continue
        if SEPARATOR_PATTERN.match(stripped) and not rows:
            continue
        rows.append(stripped)
    return rows


def parse_markdown_edits(markdown: str) -> ParsedEdits:
    """
    Parses the markdown edit table. Rows that cannot become a valid edit are
    logged and listed in `skipped_rows`; the rest keep their table order.
    """
    result = ParsedEdits()

    name = _metadata(markdown, "Author Name")
    email = _metadata(markdown, "Author Email")
    if name:
        result.author = Author(name=name, email=email or None)

    sections = _replacement_sections(markdown)

    for row in _table_rows(markdown):
        cells = _split_cells(row)
        try:
            if len(cells) < 2:
                raise ValueError("expected Id, Find, Occurrence and Comment cells")
            cells += [EMPTY_CELL] * (4 - len(cells))
            edit_id, find, occurrence_cell, comment = cells[:4]
            find = _unquote(find)

            occurrence, select_all = _parse_occurrence(occurrence_cell)
            edit = Edit(
                find=find,
                replace=sections.get(edit_id),
                occurrence=occurrence,
                all=select_all,
                comment=None if comment in ("", EMPTY_CELL) else comment,
            )
        except (ValueError, ValidationError) as e:
            logger.warning("Skipping malformed row", row=row, error=str(e))
            result.skipped_rows.append(row)
            continue
        result.edits.append(edit)

    logger.info("Parsed markdown edits", edits=len(result.edits), skipped=len(result.skipped_rows))
    return result


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def _find_cell(value: str) -> str:
    text = _cell(value)
    if value != value.strip() or value.startswith("`") or value in ("", EMPTY_CELL):
        return f"`{text}`"
    return text


def edits_to_markdown(edits: List[Edit], author: Optional[Author] = None) -> str:
    """Renders edits in the table format parse_markdown_edits() reads."""
    lines = ["# Edits", ""]

    if author is not None:
        lines.append("## Metadata")
        lines.append(f"- **Author Name**: {author.name}")
        if author.email:
            lines.append(f"- **Author Email**: {author.email}")
        lines.append("")

    lines += [
        "## Edits Table",
        "",
        "| Id | Find | Occurrence | Comment |",
        "|----|------|------------|---------|",
    ]

    sections = []
    for index, edit in enumerate(edits, start=1):
        edit_id = f"e{index}"
        if edit.all:
            occurrence = "all"
        elif edit.occurrence is None:
            occurrence = EMPTY_CELL
        else:
            occurrence = str(edit.occurrence)
        comment = _cell(edit.comment) if edit.comment else EMPTY_CELL
        lines.append(f"| {edit_id} | {_find_cell(edit.find)} | {occurrence} | {comment} |")

        if edit.replace is not None:
            sections.append((edit_id, edit.replace))

    if sections:
        lines += ["", "## Replacement Text"]
        for edit_id, text in sections:
            lines += ["", f"### {edit_id} replace", text]

    return "\n".join(lines) + "\n"
