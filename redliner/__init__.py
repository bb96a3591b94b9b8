from importlib.metadata import PackageNotFoundError, version

from redliner.errors import ConfigError, RedlinerError, RunModelError
from redliner.ingest import extract_text_from_stream
from redliner.markup import edits_to_markdown, parse_markdown_edits
from redliner.merge import MergeConflictError, MergeStrategy, merge_edit_files, merge_edit_lists
from redliner.models import Author, Edit, EditConfig, SessionResult, SkipReason
from redliner.redline.engine import RedlineEngine

try:
    __version__ = version("redliner")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "RedlineEngine",
    "Edit",
    "Author",
    "EditConfig",
    "SessionResult",
    "SkipReason",
    "RedlinerError",
    "RunModelError",
    "ConfigError",
    "MergeConflictError",
    "extract_text_from_stream",
    "merge_edit_lists",
    "merge_edit_files",
    "MergeStrategy",
    "parse_markdown_edits",
    "edits_to_markdown",
    "__version__",
]
