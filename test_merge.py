"""
Tests for merging edit lists from several reviewers.

Run: python3 test_merge.py
"""

import json
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, ".")

from redliner.config import parse_config
from redliner.merge import COMMENT_SEPARATOR, MergeConflictError, match_key, merge_edit_files, merge_edit_lists
from redliner.models import Edit

LEGAL = [
    Edit(find="Buyer", replace="Purchaser", all=True, comment="Defined term"),
    Edit(find="30 days", replace="45 days"),
]
COMMERCIAL = [
    Edit(find="price", replace="fee", occurrence=2),
    Edit(find="Buyer", replace="Purchaser", all=True, comment="Matches the order form"),
]
FINANCE = [
    Edit(find="30 days", replace="60 days", occurrence=1),
]


def test_match_keys():
    assert match_key(Edit(find="a", replace="b")) == ("a", 1)
    assert match_key(Edit(find="a", replace="b", occurrence=1)) == ("a", 1)
    assert match_key(Edit(find="a", replace="b", occurrence=3)) == ("a", 3)
    assert match_key(Edit(find="a", replace="b", occurrence=3, all=True)) == ("a", "all")
    print("PASS: test_match_keys")


def test_disjoint_lists_are_concatenated():
    result = merge_edit_lists([LEGAL[1:], COMMERCIAL[:1]])

    assert [e.find for e in result.edits] == ["30 days", "price"]
    assert result.conflicts == []
    assert result.source_count == 2
    # Same text, different occurrences: no conflict
    other = merge_edit_lists([[Edit(find="a", replace="b")], [Edit(find="a", replace="c", occurrence=2)]])
    assert len(other.edits) == 2
    print("PASS: test_disjoint_lists_are_concatenated")


def test_error_strategy_reports_conflicts():
    try:
        merge_edit_lists([LEGAL, COMMERCIAL, FINANCE])
        assert False, "Expected MergeConflictError"
    except MergeConflictError as e:
        assert "2 conflict(s) detected" in str(e)
        descriptions = [c.describe() for c in e.conflicts]
        assert descriptions == [
            "'Buyer' (all): 2 conflicting edits from sources [0, 1]",
            "'30 days' (occurrence=1): 2 conflicting edits from sources [0, 2]",
        ]
    print("PASS: test_error_strategy_reports_conflicts")


def test_first_strategy_keeps_the_earliest():
    result = merge_edit_lists([LEGAL, COMMERCIAL, FINANCE], "first")

    assert [(e.find, e.replace) for e in result.edits] == [
        ("Buyer", "Purchaser"),
        ("30 days", "45 days"),
        ("price", "fee"),
    ]
    assert result.edits[0].comment == "Defined term"
    assert [c.resolution for c in result.conflicts] == ["first", "first"]
    print("PASS: test_first_strategy_keeps_the_earliest")


def test_last_strategy_replaces_in_place():
    result = merge_edit_lists([LEGAL, COMMERCIAL, FINANCE], "last")

    assert [(e.find, e.replace) for e in result.edits] == [
        ("Buyer", "Purchaser"),
        ("30 days", "60 days"),
        ("price", "fee"),
    ]
    assert result.edits[0].comment == "Matches the order form"
    assert [c.resolution for c in result.conflicts] == ["last", "last"]
    print("PASS: test_last_strategy_replaces_in_place")


def test_combine_strategy_joins_comments():
    result = merge_edit_lists([LEGAL, COMMERCIAL, FINANCE], "combine")

    buyer = result.edits[0]
    assert buyer.replace == "Purchaser"
    assert buyer.comment == "Defined term" + COMMENT_SEPARATOR + "Matches the order form"
    # Different replacements cannot be combined; the first one stays
    assert result.edits[1].replace == "45 days"
    assert [c.resolution for c in result.conflicts] == ["combined", "first"]
    # Inputs are left as they were
    assert LEGAL[0].comment == "Defined term"
    print("PASS: test_combine_strategy_joins_comments")


def test_unknown_strategy():
    try:
        merge_edit_lists([LEGAL], "newest")
        assert False, "Expected ValueError"
    except ValueError:
        pass
    print("PASS: test_unknown_strategy")


def test_merge_files_payload_loads_as_config():
    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        paths = []
        for name, edits in (("legal.json", LEGAL), ("commercial.json", COMMERCIAL)):
            path = tmp / name
            path.write_text(json.dumps([e.model_dump(exclude_defaults=True) for e in edits]), encoding="utf-8")
            paths.append(path)

        result = merge_edit_files(paths, "first")
        payload = result.to_payload([p.name for p in paths])

    assert payload["merge_info"] == {
        "sources": ["legal.json", "commercial.json"],
        "strategy": "first",
        "conflicts_resolved": 1,
    }
    assert parse_config(payload).edits == result.edits
    print("PASS: test_merge_files_payload_loads_as_config")


if __name__ == "__main__":
    tests = [
        test_match_keys,
        test_disjoint_lists_are_concatenated,
        test_error_strategy_reports_conflicts,
        test_first_strategy_keeps_the_earliest,
        test_last_strategy_replaces_in_place,
        test_combine_strategy_joins_comments,
        test_unknown_strategy,
        test_merge_files_payload_loads_as_config,
    ]

    failed = 0
    for t in tests:
        try:
            t()
        except Exception as e:
            print(f"FAIL: {t.__name__}: {e}")
            failed += 1
    sys.exit(1 if failed else 0)
