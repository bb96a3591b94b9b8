"""
Structural splitting used by the patcher.

split_run() cuts one <w:r> in two at a text offset. The container helpers
then lift a run out of any wrapping <w:hyperlink>/<w:ins>/... so that a match
ends up as a contiguous group of paragraph-level siblings.
"""

from copy import deepcopy
from typing import Callable, Optional, Tuple

import structlog
from docx.oxml import OxmlElement
from docx.oxml.ns import qn

from redliner.utils.docx import get_child_text, get_run_text, is_property_element, set_text_content

logger = structlog.get_logger(__name__)

CloneHook = Optional[Callable[[object], None]]


def split_run(run, offset: int, on_copy: CloneHook = None, boundary_right: bool = False) -> Tuple[object, object]:
    """
    Splits `run` so the first `offset` characters stay in it and the rest
    move to a new run inserted right after it. Both halves keep the original
    <w:rPr>; `on_copy` is called with the new run once its copy is in place.

    Zero-width children (field chars, drawings, anchors) sitting exactly at
    `offset` stay on the left unless `boundary_right` is set. Returns
    (left, right).
    """
    text = get_run_text(run)
    if not 0 < offset < len(text):
        raise ValueError(f"Split offset {offset} must fall inside run text of length {len(text)}")

    right = OxmlElement("w:r")
    for key, value in run.attrib.items():
        right.set(key, value)
    rPr = run.find(qn("w:rPr"))
    if rPr is not None:
        right.append(deepcopy(rPr))
    if on_copy is not None:
        on_copy(right)

    pos = 0
    for child in list(run):
        if child.tag == qn("w:rPr"):
            continue
        length = len(get_child_text(child))

        if length == 0:
            if pos > offset or (pos == offset and boundary_right):
                right.append(child)
        elif pos >= offset:
            right.append(child)
        elif pos + length > offset:
            cut = offset - pos
            full = child.text
            tail = OxmlElement("w:delText" if child.tag == qn("w:delText") else "w:t")
            set_text_content(child, full[:cut])
            set_text_content(tail, full[cut:])
            right.append(tail)
        pos += length

    run.addnext(right)
    logger.debug("Split run", offset=offset, left=text[:offset], right=text[offset:])
    return run, right


def _clone_container(container):
    """Copy of `container` keeping its tag, attributes and *Pr children only."""
    clone = deepcopy(container)
    for child in list(clone):
        if not is_property_element(child):
            clone.remove(child)
    return clone


def split_container_before(node, paragraph, on_clone: CloneHook = None):
    """
    Makes `node` the first content of every ancestor below `paragraph`.
    Content preceding it moves into clones of those ancestors, placed before
    them. Returns the paragraph-level ancestor that now starts with `node`.
    """
    current = node
    parent = current.getparent()
    while parent is not paragraph:
        before = []
        sibling = current.getprevious()
        while sibling is not None:
            if not is_property_element(sibling):
                before.append(sibling)
            sibling = sibling.getprevious()

        if before:
            clone = _clone_container(parent)
            for sibling in reversed(before):
                clone.append(sibling)
            parent.addprevious(clone)
            if on_clone is not None:
                on_clone(clone)

        current = parent
        parent = current.getparent()
        if parent is None:
            raise ValueError("Node is not inside the given paragraph")
    return current


def split_container_after(node, paragraph, on_clone: CloneHook = None):
    """
    Makes `node` the last content of every ancestor below `paragraph`.
    Content following it moves into clones placed after those ancestors.
    Returns the paragraph-level ancestor that now ends with `node`.
    """
    current = node
    parent = current.getparent()
    while parent is not paragraph:
        after = []
        sibling = current.getnext()
        while sibling is not None:
            if not is_property_element(sibling):
                after.append(sibling)
            sibling = sibling.getnext()

        if after:
            clone = _clone_container(parent)
            for sibling in after:
                clone.append(sibling)
            parent.addnext(clone)
            if on_clone is not None:
                on_clone(clone)

        current = parent
        parent = current.getparent()
        if parent is None:
            raise ValueError("Node is not inside the given paragraph")
    return current
