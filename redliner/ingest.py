import io
from typing import Dict, List

import structlog
from docx import Document
from docx.oxml.ns import qn

from redliner.redline.comments import read_comments
from redliner.redline.mapper import PARAGRAPH_SEPARATOR, DocumentMapper
from redliner.utils.docx import CONTAINER_TAGS, get_run_text, iter_body_paragraphs

logger = structlog.get_logger(__name__)


def load_document(file_stream: io.BytesIO):
    try:
        file_stream.seek(0)
        return Document(file_stream)
    except Exception as e:
        logger.error("Could not open document", error=str(e))
        raise ValueError(f"Could not open document: {e}") from e


def extract_text_from_stream(file_stream: io.BytesIO, markup: bool = False) -> str:
    """
    Returns the body text the matcher searches: insertions kept, deletions
    dropped, one newline between paragraphs.

    Args:
        markup: If True, renders tracked changes and comments as CriticMarkup
                instead ({--deleted--}{++inserted++}, {==text==}{>>comment<<}).
    """
    doc = load_document(file_stream)
    if not markup:
        return DocumentMapper(doc).full_text

    comments_map = read_comments(doc)
    paragraphs = [_render_markup(paragraph._p, comments_map) for paragraph in iter_body_paragraphs(doc)]
    return PARAGRAPH_SEPARATOR.join(paragraphs)


def _render_markup(container, comments_map: Dict[str, dict]) -> str:
    parts: List[str] = []
    for child in container:
        tag = child.tag
        if tag == qn("w:r"):
            parts.append(get_run_text(child))
        elif tag in (qn("w:ins"), qn("w:moveTo")):
            inner = _render_markup(child, comments_map)
            if inner:
                parts.append("{++" + inner + "++}")
        elif tag in (qn("w:del"), qn("w:moveFrom")):
            inner = _render_markup(child, comments_map)
            if inner:
                parts.append("{--" + inner + "--}")
        elif tag in CONTAINER_TAGS:
            parts.append(_render_markup(child, comments_map))
        elif tag == qn("w:commentRangeStart"):
            parts.append("{==")
        elif tag == qn("w:commentRangeEnd"):
            comment = comments_map.get(child.get(qn("w:id")))
            if comment:
                parts.append(f"==}}{{>>[{comment['author']}] {comment['text']}<<}}")
            else:
                parts.append("==}")
    return "".join(parts)
