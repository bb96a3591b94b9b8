"""
Tests for the MCP tool functions, called directly.

Run: python3 test_server.py
"""

import sys
import tempfile
from pathlib import Path

sys.path.insert(0, ".")

from docx_fixtures import make_doc
from redliner.models import Edit
from redliner.server import apply_tracked_edits, find_text, read_docx


def test_read_and_find():
    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp) / "doc.docx"
        make_doc("the cat and the dog").save(str(source))

        assert read_docx(str(source)) == "the cat and the dog"
        listing = find_text(str(source), "the")
        assert listing.splitlines()[0].startswith("#1 at 0:")
        assert listing.splitlines()[1].startswith("#2 at 12:")
        assert find_text(str(source), "zebra") == "No occurrences of 'zebra'."
        assert read_docx(str(Path(tmp) / "missing.docx")).startswith("Error reading file")
    print("PASS: test_read_and_find")


def test_apply_writes_redlined_copy():
    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp) / "doc.docx"
        make_doc("the cat and the dog").save(str(source))

        report = apply_tracked_edits(
            str(source),
            [Edit(find="the", replace="a", occurrence=2), Edit(find="cow", replace="ox")],
            author_name="Reviewer AI",
        )

        target = Path(tmp) / "doc_redlined.docx"
        assert target.exists()
        assert report.startswith("Applied 1 edits. Skipped 1 edits.")
        assert "'cow' (occurrence=1): no matches found" in report
        assert read_docx(str(target)) == "the cat and a dog"
        assert read_docx(str(target), markup=True) == "the cat and {--the--}{++a++} dog"

        # Re-running on the redlined copy overwrites it in place
        apply_tracked_edits(str(target), [Edit(find="cat", replace="lion")], author_name="Reviewer AI")
        assert read_docx(str(target)) == "the lion and a dog"
    print("PASS: test_apply_writes_redlined_copy")


def test_empty_author_is_rejected():
    assert apply_tracked_edits("unused.docx", [], author_name="  ") == "Error: author_name cannot be empty."
    print("PASS: test_empty_author_is_rejected")


if __name__ == "__main__":
    tests = [
        test_read_and_find,
        test_apply_writes_redlined_copy,
        test_empty_author_is_rejected,
    ]

    failed = 0
    for t in tests:
        try:
            t()
        except Exception as e:
            print(f"FAIL: {t.__name__}: {e}")
            failed += 1
    sys.exit(1 if failed else 0)
