"""
Low-level utilities for reading and manipulating DOCX XML structures.
Contains normalization logic ported from Open-Xml-PowerTools concepts.
"""

from typing import Iterator, Union

import structlog
from docx.document import Document as DocumentObject
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.table import Table, _Cell
from docx.text.paragraph import Paragraph
from docx.text.run import Run
from lxml import etree

from redliner.errors import RunModelError

logger = structlog.get_logger(__name__)

# Wrappers whose runs belong to the accepted ("visible") text.
CONTAINER_TAGS = frozenset(
    {
        qn("w:ins"),
        qn("w:moveTo"),
        qn("w:hyperlink"),
        qn("w:smartTag"),
        qn("w:customXml"),
        qn("w:fldSimple"),
        qn("w:sdt"),
        qn("w:sdtContent"),
    }
)

# Wrappers whose runs are already deleted.
HIDDEN_TAGS = frozenset({qn("w:del"), qn("w:moveFrom")})

# Tracked-change wrappers that carry a w:id of their own.
REVISION_TAGS = frozenset({qn("w:ins"), qn("w:del"), qn("w:moveTo"), qn("w:moveFrom")})


def create_element(name: str):
    return OxmlElement(name)


def create_attribute(element, name: str, value: str):
    element.set(qn(name), value)


def set_text_content(element, text: str):
    element.text = text
    if text.strip() != text:
        create_attribute(element, "xml:space", "preserve")


def is_property_element(element) -> bool:
    """True for w:rPr, w:smartTagPr, w:customXmlPr and friends."""
    tag = element.tag
    return isinstance(tag, str) and tag.endswith("Pr")


def get_child_text(child) -> str:
    """
    Returns the text a single run child contributes, following python-docx
    Run.text: <w:tab/> is a tab, a text-wrapping <w:br/> is a newline.
    """
    tag = child.tag
    if tag in (qn("w:t"), qn("w:delText")):
        if len(child):
            raise RunModelError(f"<{child.prefix}:{etree_localname(child)}> contains child elements")
        return child.text or ""
    if tag in (qn("w:tab"), qn("w:ptab")):
        return "\t"
    if tag == qn("w:br"):
        br_type = child.get(qn("w:type"))
        return "\n" if br_type in (None, "textWrapping") else ""
    if tag == qn("w:cr"):
        return "\n"
    if tag == qn("w:noBreakHyphen"):
        return "-"
    return ""


def etree_localname(element) -> str:
    return etree.QName(element).localname


def get_run_text(run_element) -> str:
    """
    Extracts the text of a <w:r> element, including <w:delText> so deleted
    runs can be rendered too.
    """
    if run_element is None or run_element.tag != qn("w:r"):
        tag = None if run_element is None else run_element.tag
        raise RunModelError(f"Expected a <w:r> element, got {tag!r}")
    return "".join(get_child_text(child) for child in run_element)


def iter_visible_runs(container) -> Iterator:
    """
    Yields the <w:r> elements of a paragraph (or inline container) in document
    order, as they appear once all tracked changes are accepted: runs inside
    <w:ins> are kept, runs inside <w:del> are dropped.
    """
    for child in container:
        tag = child.tag
        if tag == qn("w:r"):
            yield child
        elif tag in CONTAINER_TAGS:
            yield from iter_visible_runs(child)


def iter_block_items(parent) -> Iterator[Union[Paragraph, Table]]:
    """
    Yields Paragraph or Table objects in the order they appear in the XML,
    including those wrapped in block-level <w:sdt> content controls.
    Supports Document and Cell objects.
    Recursion is left to the caller.
    """
    if isinstance(parent, DocumentObject):
        parent_elm = parent.element.body
    elif isinstance(parent, _Cell):
        parent_elm = parent._tc
    else:
        raise ValueError(f"Unsupported parent type for iteration: {type(parent)}")

    for child in _iter_block_elements(parent_elm):
        if child.tag == qn("w:p"):
            yield Paragraph(child, parent)
        else:
            yield Table(child, parent)


def _iter_block_elements(parent_elm):
    """<w:p> and <w:tbl> children, looking through block-level content controls."""
    for child in parent_elm.iterchildren():
        if child.tag in (qn("w:p"), qn("w:tbl")):
            yield child
        elif child.tag == qn("w:sdt"):
            content = child.find(qn("w:sdtContent"))
            if content is not None:
                yield from _iter_block_elements(content)


def iter_body_paragraphs(parent) -> Iterator[Paragraph]:
    """
    Yields every paragraph of the main body in reading order, descending into
    table cells (and nested tables). Headers and footers are not visited.
    """
    for item in iter_block_items(parent):
        if isinstance(item, Paragraph):
            yield item
        elif isinstance(item, Table):
            for row in item.rows:
                for tc in row._tr.tc_lst:
                    yield from iter_body_paragraphs(_Cell(tc, item))


def _are_runs_identical(r1: Run, r2: Run) -> bool:
    """
    Compares two runs to see if they have identical formatting properties.
    """
    rPr1 = r1._r.rPr
    rPr2 = r2._r.rPr

    xml1 = rPr1.xml if rPr1 is not None else ""
    xml2 = rPr2.xml if rPr2 is not None else ""

    return xml1 == xml2


def _has_special_content(run: Run) -> bool:
    """
    Checks if the run contains elements that are not simple text, which would be lost
    during coalescing (e.g. w:commentReference, w:drawing, w:fldChar).
    """
    SAFE_TAGS = {
        qn("w:t"),
        qn("w:tab"),
        qn("w:br"),
        qn("w:cr"),
        qn("w:rPr"),
    }

    for child in run._element:
        if child.tag not in SAFE_TAGS:
            return True
    return False


def _coalesce_runs_in_paragraph(paragraph: Paragraph) -> int:
    """
    Merges adjacent runs with identical formatting.
    This fixes issues where words are split like ["Con", "tract"] due to editing history.
    Returns the number of runs removed.
    """
    merged = 0
    i = 0
    while i < len(paragraph.runs) - 1:
        current_run = paragraph.runs[i]
        next_run = paragraph.runs[i + 1]

        if _has_special_content(current_run) or _has_special_content(next_run):
            i += 1
            continue

        # Only merge runs that are direct neighbours in the XML (no bookmark or
        # comment anchor in between).
        if current_run._r.getnext() is not next_run._r:
            i += 1
            continue

        if _are_runs_identical(current_run, next_run):
            # Move children manually to preserve w:br, w:tab, etc.
            for child in list(next_run._element):
                if child.tag == qn("w:rPr"):
                    continue
                current_run._element.append(child)
            paragraph._p.remove(next_run._r)
            merged += 1
            # Do NOT increment i; check the *new* next_run against current_run
        else:
            i += 1
    return merged


def normalize_docx(doc: DocumentObject) -> int:
    """
    Applies normalization to the document body to reduce run fragmentation.
    1. Removes proof errors (spellcheck squiggles).
    2. Coalesces adjacent runs with identical formatting.
    Returns the number of runs merged away.
    """
    logger.info("Normalizing DOCX structure...")

    for proof_err in doc.element.body.xpath(".//w:proofErr"):
        proof_err.getparent().remove(proof_err)

    merged = 0
    for paragraph in iter_body_paragraphs(doc):
        merged += _coalesce_runs_in_paragraph(paragraph)

    logger.debug("Normalization complete", runs_merged=merged)
    return merged
