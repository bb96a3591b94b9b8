"""
Tests for the flattened text view (DocumentMapper) and run text helpers.

Run: python3 test_mapper.py
"""

import sys

sys.path.insert(0, ".")

from docx import Document
from docx.oxml import OxmlElement

from docx_fixtures import add_raw, make_doc, xml_fragment
from redliner.errors import RunModelError
from redliner.redline.mapper import DocumentMapper
from redliner.utils.docx import get_run_text


def test_runs_are_concatenated_in_order():
    doc = make_doc(["Hel", "lo ", "world"], "Second")
    mapper = DocumentMapper(doc)

    assert mapper.full_text == "Hello world\nSecond"
    assert [s.text for s in mapper.spans] == ["Hel", "lo ", "world", "\n", "Second"]
    assert mapper.spans[3].is_virtual
    # Spans tile the buffer with no gaps
    for prev, nxt in zip(mapper.spans, mapper.spans[1:]):
        assert prev.end == nxt.start
    assert "".join(s.text for s in mapper.spans) == mapper.full_text
    print("PASS: test_runs_are_concatenated_in_order")


def test_locate_boundaries():
    doc = make_doc(["Hel", "lo ", "world"], "Second")
    mapper = DocumentMapper(doc)

    assert mapper.locate(0) == (0, 0)
    assert mapper.locate(2) == (0, 2)
    # A boundary belongs to the following run
    assert mapper.locate(3) == (1, 0)
    assert mapper.locate(4) == (1, 1)
    assert mapper.locate(11) == (3, 0)
    assert mapper.locate(12) == (4, 0)
    assert mapper.locate(len(mapper.full_text)) == (len(mapper.spans), 0)

    for bad in (-1, len(mapper.full_text) + 1):
        try:
            mapper.locate(bad)
            assert False, f"locate({bad}) should raise"
        except IndexError:
            pass
    print("PASS: test_locate_boundaries")


def test_accepted_view_hides_deletions():
    doc = make_doc("Keep ")
    p = doc.paragraphs[0]
    add_raw(p, '<w:del w:id="5" w:author="A"><w:r><w:delText>gone</w:delText></w:r></w:del>')
    add_raw(p, '<w:ins w:id="6" w:author="A"><w:r><w:t>new</w:t></w:r></w:ins>')
    add_raw(p, '<w:moveFrom w:id="7" w:author="A"><w:r><w:t>moved</w:t></w:r></w:moveFrom>')

    mapper = DocumentMapper(doc)
    assert mapper.full_text == "Keep new"
    print("PASS: test_accepted_view_hides_deletions")


def test_runs_inside_inline_containers():
    doc = make_doc("See ")
    p = doc.paragraphs[0]
    add_raw(p, '<w:hyperlink r:id="rId99"><w:r><w:t>the link</w:t></w:r></w:hyperlink>')
    add_raw(p, '<w:smartTag w:uri="u" w:element="e"><w:r><w:t xml:space="preserve"> and tag</w:t></w:r></w:smartTag>')

    mapper = DocumentMapper(doc)
    assert mapper.full_text == "See the link and tag"
    assert len(mapper.spans) == 3
    print("PASS: test_runs_inside_inline_containers")


def test_tabs_and_breaks():
    doc = Document()
    p = doc.add_paragraph()
    run = p.add_run("a\tb")
    run.add_break()
    run.add_text("c")

    mapper = DocumentMapper(doc)
    assert mapper.full_text == "a\tb\nc"
    print("PASS: test_tabs_and_breaks")


def test_page_break_contributes_nothing():
    r = xml_fragment('<w:r><w:t>a</w:t><w:br w:type="page"/><w:t>b</w:t><w:noBreakHyphen/></w:r>')
    assert get_run_text(r) == "ab-"
    print("PASS: test_page_break_contributes_nothing")


def test_tables_are_walked_in_reading_order():
    doc = Document()
    doc.add_paragraph("Before")
    table = doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "A"
    table.cell(0, 1).text = "B"
    doc.add_paragraph("After")

    mapper = DocumentMapper(doc)
    assert mapper.full_text == "Before\nA\nB\nAfter"
    print("PASS: test_tables_are_walked_in_reading_order")


def test_content_control_paragraphs_are_walked():
    doc = make_doc("Before", "After")
    doc.paragraphs[0]._p.addnext(
        xml_fragment(
            '<w:sdt><w:sdtPr><w:alias w:val="Law"/></w:sdtPr><w:sdtContent>'
            "<w:p><w:r><w:t>Governed by English law</w:t></w:r></w:p>"
            "</w:sdtContent></w:sdt>"
        )
    )

    mapper = DocumentMapper(doc)
    assert mapper.full_text == "Before\nGoverned by English law\nAfter"
    print("PASS: test_content_control_paragraphs_are_walked")


def test_empty_runs_are_skipped():
    doc = make_doc(["one", "", "two"])
    mapper = DocumentMapper(doc)
    assert [s.text for s in mapper.spans] == ["one", "two"]
    print("PASS: test_empty_runs_are_skipped")


def test_rebuild_sees_new_text():
    doc = make_doc("first")
    mapper = DocumentMapper(doc)
    doc.add_paragraph("second")
    assert mapper.full_text == "first"
    mapper.rebuild()
    assert mapper.full_text == "first\nsecond"
    print("PASS: test_rebuild_sees_new_text")


def test_malformed_text_element_raises():
    doc = make_doc("fine")
    add_raw(doc.paragraphs[0], "<w:r><w:t>bad<w:b/></w:t></w:r>")
    try:
        DocumentMapper(doc)
        assert False, "Expected RunModelError"
    except RunModelError:
        pass
    print("PASS: test_malformed_text_element_raises")


def test_get_run_text_rejects_non_runs():
    for element in (None, OxmlElement("w:p")):
        try:
            get_run_text(element)
            assert False, "Expected RunModelError"
        except RunModelError:
            pass
    print("PASS: test_get_run_text_rejects_non_runs")


def test_context_snippet():
    doc = make_doc("the quick brown fox jumps over the lazy dog")
    mapper = DocumentMapper(doc)
    start = mapper.full_text.index("fox")
    assert mapper.context(start, start + 3, width=6) == "...brown fox jumps..."
    print("PASS: test_context_snippet")


if __name__ == "__main__":
    tests = [
        test_runs_are_concatenated_in_order,
        test_locate_boundaries,
        test_accepted_view_hides_deletions,
        test_runs_inside_inline_containers,
        test_tabs_and_breaks,
        test_page_break_contributes_nothing,
        test_tables_are_walked_in_reading_order,
        test_content_control_paragraphs_are_walked,
        test_empty_runs_are_skipped,
        test_rebuild_sees_new_text,
        test_malformed_text_element_raises,
        test_get_run_text_rejects_non_runs,
        test_context_snippet,
    ]

    failed = 0
    for t in tests:
        try:
            t()
        except Exception as e:
            print(f"FAIL: {t.__name__}: {e}")
            failed += 1
    sys.exit(1 if failed else 0)
