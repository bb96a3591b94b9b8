"""
Shared helpers for the test modules: build small documents in memory and
read them back in their accepted / rejected views.
"""

from io import BytesIO

from docx import Document
from docx.oxml import parse_xml
from docx.oxml.ns import nsdecls, qn

from redliner.models import Author
from redliner.redline.engine import RedlineEngine
from redliner.utils.docx import get_run_text, iter_body_paragraphs

TIMESTAMP = "2025-01-01T00:00:00Z"
AUTHOR = Author(name="Test Reviewer", email="reviewer@example.com")


def make_doc(*paragraphs):
    """
    Each argument is one paragraph: a string (one run) or a list of strings
    (one run each).
    """
    doc = Document()
    for content in paragraphs:
        para = doc.add_paragraph()
        runs = [content] if isinstance(content, str) else content
        for text in runs:
            para.add_run(text)
    return doc


def xml_fragment(xml: str):
    """Parses a WordprocessingML fragment; `w:` and `r:` prefixes are declared."""
    first_tag_end = xml.index(">")
    if xml[first_tag_end - 1] == "/":
        first_tag_end -= 1
    return parse_xml(xml[:first_tag_end] + f" {nsdecls('w', 'r')}" + xml[first_tag_end:])


def add_raw(paragraph, xml: str):
    element = xml_fragment(xml)
    paragraph._p.append(element)
    return element


def to_stream(doc) -> BytesIO:
    buf = BytesIO()
    doc.save(buf)
    buf.seek(0)
    return buf


def make_engine(doc, author=AUTHOR, **kwargs) -> RedlineEngine:
    return RedlineEngine(to_stream(doc), author=author, timestamp=TIMESTAMP, **kwargs)


def reload(engine: RedlineEngine) -> RedlineEngine:
    return RedlineEngine(engine.save_to_stream(), author=engine.author, timestamp=TIMESTAMP)


def body_xpath(engine: RedlineEngine, expr: str):
    return engine.doc.element.body.xpath(expr)


def _rejected(container) -> str:
    parts = []
    for child in container:
        if child.tag == qn("w:r"):
            parts.append(get_run_text(child))
        elif child.tag in (qn("w:ins"), qn("w:moveTo")):
            continue
        elif child.tag.endswith("Pr"):
            continue
        else:
            parts.append(_rejected(child))
    return "".join(parts)


def rejected_text(doc) -> str:
    """Body text with every tracked change rejected."""
    return "\n".join(_rejected(p._p) for p in iter_body_paragraphs(doc))
