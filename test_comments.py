"""
Tests for the comments part and its companion parts.

Run: python3 test_comments.py
"""

import sys

sys.path.insert(0, ".")

from docx import Document
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml.ns import qn

from docx_fixtures import AUTHOR, TIMESTAMP, make_doc, to_stream
from redliner.models import Author
from redliner.redline.comments import (
    RELTYPE_EXTENDED,
    RELTYPE_EXTENSIBLE,
    RELTYPE_IDS,
    CommentsManager,
    read_comments,
)


def _reltypes(doc):
    return {rel.reltype for rel in doc.part.rels.values()}


def test_parts_are_created_and_linked():
    doc = make_doc("Some text")
    manager = CommentsManager(doc)

    reltypes = _reltypes(doc)
    for reltype in (RT.COMMENTS, RELTYPE_EXTENDED, RELTYPE_IDS, RELTYPE_EXTENSIBLE):
        assert reltype in reltypes, reltype
    assert manager.next_id == 0
    print("PASS: test_parts_are_created_and_linked")


def test_comment_ids_are_sequential():
    doc = make_doc("Some text")
    manager = CommentsManager(doc)

    first = manager.add_comment(AUTHOR, "First note", TIMESTAMP)
    second = manager.add_comment(Author(name="Jane Roe"), "Second note", TIMESTAMP)
    assert (first, second) == ("0", "1")

    data = manager.extract_comments_data()
    assert data["0"] == {"author": "Test Reviewer", "text": "First note", "date": TIMESTAMP}
    assert data["1"]["author"] == "Jane Roe"

    comment = manager.comments_part.element.findall(qn("w:comment"))[1]
    assert comment.get(qn("w:initials")) == "JR"
    print("PASS: test_comment_ids_are_sequential")


def test_companion_entries_share_para_id():
    doc = make_doc("Some text")
    manager = CommentsManager(doc)
    manager.add_comment(AUTHOR, "Note", TIMESTAMP)

    para_id = manager.comments_part.element.find(qn("w:comment")).find(qn("w:p")).get(qn("w14:paraId"))
    comment_ex = manager.extended_part.element.find(qn("w15:commentEx"))
    comment_id = manager.ids_part.element.find(qn("w16cid:commentId"))
    extensible = manager.extensible_part.element.find(qn("w16cex:commentExtensible"))

    assert comment_ex.get(qn("w15:paraId")) == para_id
    assert comment_id.get(qn("w16cid:paraId")) == para_id
    assert extensible.get(qn("w16cex:durableId")) == comment_id.get(qn("w16cid:durableId"))
    assert int(para_id, 16) < 0x80000000
    print("PASS: test_companion_entries_share_para_id")


def test_anchor_brackets_the_range():
    doc = make_doc(["one ", "two", " three"])
    p = doc.paragraphs[0]._p
    runs = p.findall(qn("w:r"))

    manager = CommentsManager(doc)
    comment_id = manager.add_comment(AUTHOR, "Note", TIMESTAMP)
    manager.anchor(comment_id, runs[1], runs[1])

    tags = [child.tag for child in p if child.tag != qn("w:pPr")]
    assert tags == [
        qn("w:r"),
        qn("w:commentRangeStart"),
        qn("w:r"),
        qn("w:commentRangeEnd"),
        qn("w:r"),
        qn("w:r"),
    ]
    ref = p.find(qn("w:commentRangeEnd")).getnext().find(qn("w:commentReference"))
    assert ref.get(qn("w:id")) == comment_id
    print("PASS: test_anchor_brackets_the_range")


def test_comments_survive_save_and_reload():
    doc = make_doc("Some text")
    manager = CommentsManager(doc)
    manager.add_comment(AUTHOR, "Persisted", TIMESTAMP)

    reloaded = Document(to_stream(doc))
    data = read_comments(reloaded)
    assert data["0"]["text"] == "Persisted"

    # Ids continue after the ones already in the part
    again = CommentsManager(reloaded)
    assert again.add_comment(AUTHOR, "Next", TIMESTAMP) == "1"
    print("PASS: test_comments_survive_save_and_reload")


def test_read_comments_without_part():
    assert read_comments(make_doc("No comments")) == {}
    print("PASS: test_read_comments_without_part")


if __name__ == "__main__":
    tests = [
        test_parts_are_created_and_linked,
        test_comment_ids_are_sequential,
        test_companion_entries_share_para_id,
        test_anchor_brackets_the_range,
        test_comments_survive_save_and_reload,
        test_read_comments_without_part,
    ]

    failed = 0
    for t in tests:
        try:
            t()
        except Exception as e:
            print(f"FAIL: {t.__name__}: {e}")
            failed += 1
    sys.exit(1 if failed else 0)
