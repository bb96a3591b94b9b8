import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from mcp.server.fastmcp import FastMCP

from redliner.ingest import extract_text_from_stream
from redliner.models import Author, Edit
from redliner.redline.engine import RedlineEngine
from redliner.session import find_in_document, read_file_bytes

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("Redliner Tracked Changes Service")


@mcp.tool()
def read_docx(file_path: str, markup: bool = False) -> str:
    """
    Reads a DOCX file and returns the text that edits are matched against.

    Args:
        file_path: Absolute path to the DOCX file.
        markup: If False (default), returns the 'Accepted' text (insertions kept, deletions hidden),
                exactly what `find` strings are searched in.
                If True, shows existing tracked changes inline as CriticMarkup ({--del--}{++ins++}).
    """
    try:
        return extract_text_from_stream(read_file_bytes(Path(file_path)), markup=markup)
    except Exception as e:
        return f"Error reading file: {str(e)}"


@mcp.tool()
def find_text(file_path: str, find: str) -> str:
    """
    Lists every occurrence of a literal string, numbered the way the `occurrence` field of an edit counts them.

    Args:
        file_path: Absolute path to the DOCX file.
        find: Exact, case-sensitive text to look for.
    """
    try:
        found = find_in_document(read_file_bytes(Path(file_path)), find)
        if not found:
            return f"No occurrences of {find!r}."
        return "\n".join(f"#{m.occurrence} at {m.start}: {context}" for m, context in found)
    except Exception as e:
        return f"Error searching file: {str(e)}"


@mcp.tool()
def apply_tracked_edits(
    input_path: str,
    edits: List[Edit],
    author_name: str,
    output_path: Optional[str] = None,
    author_email: Optional[str] = None,
) -> str:
    """
    Applies literal find/replace edits to the DOCX file as Track Changes.

    Each edit replaces the first occurrence of `find` by default. Set `occurrence` (1-based)
    to pick another one, or `all: true` to change every occurrence. An empty `replace` deletes.
    Edits run in order, so a later edit can match text inserted by an earlier one.

    Args:
        input_path: Absolute path to the source file.
        edits: List of edits ({find, replace, occurrence, all, comment}).
        author_name: Name to appear in Track Changes (e.g., 'Reviewer AI').
        output_path: Optional. If not provided, writes '<name>_redlined.docx' next to the input
                     (or overwrites the input if it already ends in _redlined).
        author_email: Optional email stored with each change.
    """
    try:
        if not author_name or not author_name.strip():
            return "Error: author_name cannot be empty."

        engine = RedlineEngine(read_file_bytes(Path(input_path)), author=Author(name=author_name, email=author_email))
        result = engine.apply_edits(edits)

        if not output_path:
            p = Path(input_path)
            if p.stem.endswith("_redlined"):
                output_path = str(p)
            else:
                output_path = str(p.parent / f"{p.stem}_redlined{p.suffix}")

        engine.save(output_path)

        lines = [f"Applied {result.applied} edits. Skipped {result.skipped} edits. Saved to: {output_path}"]
        for r in result.results:
            if r.skipped:
                lines.append(f"- edit {r.index} {r.edit.describe()}: {r.reason.value}")
        return "\n".join(lines)

    except Exception as e:
        return f"Error applying edits: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
