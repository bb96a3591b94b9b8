import random
import re
from typing import Dict, Optional

import structlog
from docx.opc.constants import CONTENT_TYPE as CT
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.opc.part import Part, XmlPart
from docx.oxml import OxmlElement, parse_xml
from docx.oxml.ns import nsdecls, nsmap, qn
from docx.oxml.xmlchemy import serialize_for_reading

from redliner.models import Author
from redliner.utils.docx import create_attribute, create_element

logger = structlog.get_logger(__name__)

# Register w15 namespace globally for python-docx
w15_ns = "http://schemas.microsoft.com/office/word/2012/wordml"
if "w15" not in nsmap:
    nsmap["w15"] = w15_ns

# Register w14 namespace for paraId
w14_ns = "http://schemas.microsoft.com/office/word/2010/wordml"
if "w14" not in nsmap:
    nsmap["w14"] = w14_ns

# Register w16cid namespace for durableId
w16cid_ns = "http://schemas.microsoft.com/office/word/2016/wordml/cid"
if "w16cid" not in nsmap:
    nsmap["w16cid"] = w16cid_ns

# Register w16cex namespace for commentExtensible
w16cex_ns = "http://schemas.microsoft.com/office/word/2018/wordml/cex"
if "w16cex" not in nsmap:
    nsmap["w16cex"] = w16cex_ns

RELTYPE_EXTENDED = "http://schemas.microsoft.com/office/2011/relationships/commentsExtended"
CONTENT_TYPE_EXTENDED = "application/vnd.openxmlformats-officedocument.wordprocessingml.commentsExtended+xml"

RELTYPE_IDS = "http://schemas.microsoft.com/office/2016/09/relationships/commentsIds"
CONTENT_TYPE_IDS = "application/vnd.openxmlformats-officedocument.wordprocessingml.commentsIds+xml"

RELTYPE_EXTENSIBLE = "http://schemas.microsoft.com/office/2018/08/relationships/commentsExtensible"
CONTENT_TYPE_EXTENSIBLE = "application/vnd.openxmlformats-officedocument.wordprocessingml.commentsExtensible+xml"


class CommentsManager:
    """
    Manages the 'word/comments.xml' part of the DOCX package, together with
    the commentsExtended/commentsIds/commentsExtensible parts modern Word
    expects next to it.
    """

    def __init__(self, doc):
        logger.debug("Initializing CommentsManager")
        self.doc = doc
        self.comments_part = self._get_or_create_part(
            CT.WML_COMMENTS,
            RT.COMMENTS,
            "/word/comments%d.xml",
            (
                f"<w:comments {nsdecls('w', 'w14', 'w15')} "
                f'xmlns:w16cid="{w16cid_ns}" xmlns:w16cex="{w16cex_ns}" '
                f'xmlns:mc="http://schemas.openxmlformats.org/markup-compatibility/2006" '
                f'mc:Ignorable="w14 w15 w16cid w16cex">\n'
                f"</w:comments>"
            ),
        )
        self._ensure_namespaces()
        self.extended_part = self._get_or_create_part(
            CONTENT_TYPE_EXTENDED,
            RELTYPE_EXTENDED,
            "/word/commentsExtended%d.xml",
            f"<w15:commentsEx xmlns:w15='{w15_ns}'></w15:commentsEx>",
        )
        self.ids_part = self._get_or_create_part(
            CONTENT_TYPE_IDS,
            RELTYPE_IDS,
            "/word/commentsIds%d.xml",
            f"<w16cid:commentsIds {nsdecls('w16cid')}></w16cid:commentsIds>",
        )
        self.extensible_part = self._get_or_create_part(
            CONTENT_TYPE_EXTENSIBLE,
            RELTYPE_EXTENSIBLE,
            "/word/commentsExtensible%d.xml",
            f"<w16cex:commentsExtensible {nsdecls('w16cex')}></w16cex:commentsExtensible>",
        )
        self.next_id = self._get_next_comment_id()

    def _ensure_xml_part(self, part: Part) -> XmlPart:
        """
        Ensures a generic Part is upgraded to an XmlPart so we can manipulate it.
        Relationships are re-pointed at the new object so the saved package
        does not carry the part twice.
        """
        if isinstance(part, XmlPart):
            return part

        logger.debug("Upgrading generic Part to XmlPart", partname=part.partname)
        xml_part = XmlPart(part.partname, part.content_type, parse_xml(part.blob), part.package)

        if part in part.package.parts:
            idx = part.package.parts.index(part)
            part.package.parts[idx] = xml_part

        for rel in self.doc.part.rels.values():
            if rel.target_part == part:
                rel._target = xml_part

        return xml_part

    def _get_existing_part_by_type(self, content_type: str) -> Optional[Part]:
        """
        Searches the entire package for a part with the given content type.
        Relationship types vary by Word version, content types do not.
        """
        for part in self.doc.part.package.parts:
            if part.content_type == content_type:
                logger.debug("Found existing part by content type", content_type=content_type, partname=part.partname)
                return part
        return None

    def _link_part(self, part: XmlPart, rel_type: str) -> XmlPart:
        """
        Ensures the main document part has a relationship to the given part.
        """
        for rel in self.doc.part.rels.values():
            if not rel.is_external and rel.target_part == part:
                return part

        logger.info("Creating relationship to existing part", partname=part.partname, rel_type=rel_type)
        self.doc.part.relate_to(part, rel_type)
        return part

    def _get_or_create_part(self, content_type: str, rel_type: str, partname_tmpl: str, xml: str) -> XmlPart:
        part = self._get_existing_part_by_type(content_type)
        if part:
            return self._link_part(self._ensure_xml_part(part), rel_type)

        package = self.doc.part.package
        partname = package.next_partname(partname_tmpl)

        logger.info("Creating new part", partname=partname)
        new_part = XmlPart(partname, content_type, parse_xml(xml.encode("utf-8")), package)
        package.parts.append(new_part)
        self.doc.part.relate_to(new_part, rel_type)
        return new_part

    def _ensure_namespaces(self):
        """
        Word drops w14/w15 attributes unless the root of comments.xml declares
        them and flags them mc:Ignorable. Existing parts are patched in place.
        """
        element = self.comments_part.element
        has_w14 = element.nsmap.get("w14") == w14_ns
        has_w15 = element.nsmap.get("w15") == w15_ns

        xml_str = serialize_for_reading(element)
        has_ignorable = "mc:Ignorable" in xml_str and "w14" in xml_str and "w15" in xml_str

        if has_w14 and has_w15 and has_ignorable:
            return

        match = re.search(r"<w:comments[^>]*>", xml_str)
        if not match:
            return

        original_tag = match.group(0)
        is_self_closing = original_tag.strip().endswith("/>")

        replacement = (
            f'<w:comments xmlns:w="{nsmap["w"]}" xmlns:w14="{w14_ns}" xmlns:w15="{w15_ns}" '
            f'xmlns:w16cid="{w16cid_ns}" xmlns:w16cex="{w16cex_ns}" '
            f'xmlns:mc="http://schemas.openxmlformats.org/markup-compatibility/2006" '
            f'mc:Ignorable="w14 w15 w16cid w16cex">'
        )
        if is_self_closing:
            replacement += "</w:comments>"

        logger.debug("Patching root element namespaces", is_self_closing=is_self_closing)
        self.comments_part._element = parse_xml(xml_str.replace(original_tag, replacement, 1))

    def _get_next_comment_id(self) -> int:
        ids = [-1]
        for c in self.comments_part.element.findall(qn("w:comment")):
            try:
                ids.append(int(c.get(qn("w:id"))))
            except (ValueError, TypeError):
                pass
        return max(ids) + 1

    def _generate_hex_id(self) -> str:
        # paraId/durableId must stay below 0x80000000
        return f"{random.randint(1, 0x7FFFFFFF):08X}"

    def _get_initials(self, name: str) -> str:
        if not name:
            return ""
        return "".join(part[0] for part in name.split() if part).upper()

    def _add_to_extended_part(self, para_id: str):
        comment_ex = OxmlElement("w15:commentEx")
        comment_ex.set(qn("w15:paraId"), para_id)
        comment_ex.set(qn("w15:done"), "0")
        self.extended_part.element.append(comment_ex)

    def _add_to_ids_part(self, para_id: str) -> str:
        durable_id = self._generate_hex_id()
        comment_id_el = OxmlElement("w16cid:commentId")
        comment_id_el.set(qn("w16cid:paraId"), para_id)
        comment_id_el.set(qn("w16cid:durableId"), durable_id)
        self.ids_part.element.append(comment_id_el)
        return durable_id

    def _add_to_extensible_part(self, durable_id: str, date_utc: str):
        ext_el = OxmlElement("w16cex:commentExtensible")
        ext_el.set(qn("w16cex:durableId"), durable_id)
        ext_el.set(qn("w16cex:dateUtc"), date_utc)
        self.extensible_part.element.append(ext_el)

    def add_comment(self, author: Author, text: str, date: str) -> str:
        """Appends a <w:comment> holding `text` and returns its w:id."""
        comment_id = str(self.next_id)
        self.next_id += 1
        logger.info("Adding comment", author=author.name, comment_id=comment_id)

        comment = OxmlElement("w:comment")
        comment.set(qn("w:id"), comment_id)
        comment.set(qn("w:author"), author.name)
        comment.set(qn("w:date"), date)

        initials = self._get_initials(author.name)
        if initials:
            comment.set(qn("w:initials"), initials)

        para_id = self._generate_hex_id()

        p = OxmlElement("w:p")
        p.set(qn("w14:paraId"), para_id)
        p.set(qn("w14:textId"), "77777777")

        pPr = OxmlElement("w:pPr")
        pStyle = OxmlElement("w:pStyle")
        pStyle.set(qn("w:val"), "CommentText")
        pPr.append(pStyle)
        p.append(pPr)

        r_ref = OxmlElement("w:r")
        r_ref.append(_comment_reference_rpr())
        r_ref.append(OxmlElement("w:annotationRef"))
        p.append(r_ref)

        r = OxmlElement("w:r")
        r.text = text
        p.append(r)
        comment.append(p)

        self.comments_part.element.append(comment)

        self._add_to_extended_part(para_id)
        durable_id = self._add_to_ids_part(para_id)
        self._add_to_extensible_part(durable_id, date)

        return comment_id

    def anchor(self, comment_id: str, first, last):
        """
        Marks the sibling range first..last (inclusive, same parent) as the
        commented text: commentRangeStart before `first`, commentRangeEnd and
        the reference run after `last`.
        """
        range_start = create_element("w:commentRangeStart")
        create_attribute(range_start, "w:id", comment_id)
        range_end = create_element("w:commentRangeEnd")
        create_attribute(range_end, "w:id", comment_id)

        ref_run = create_element("w:r")
        ref_run.append(_comment_reference_rpr())
        ref = create_element("w:commentReference")
        create_attribute(ref, "w:id", comment_id)
        ref_run.append(ref)

        first.addprevious(range_start)
        last.addnext(range_end)
        range_end.addnext(ref_run)

    def extract_comments_data(self) -> Dict[str, dict]:
        return _read_comment_elements(self.comments_part.element)


def read_comments(doc) -> Dict[str, dict]:
    """Comment id -> {author, text, date}, without creating any part."""
    for part in doc.part.package.parts:
        if part.content_type == CT.WML_COMMENTS:
            element = part.element if isinstance(part, XmlPart) else parse_xml(part.blob)
            return _read_comment_elements(element)
    return {}


def _read_comment_elements(root) -> Dict[str, dict]:
    data: Dict[str, dict] = {}
    for c in root.findall(qn("w:comment")):
        text_parts = []
        for p in c.findall(qn("w:p")):
            for r in p.findall(qn("w:r")):
                for t in r.findall(qn("w:t")):
                    if t.text:
                        text_parts.append(t.text)
            text_parts.append("\n")

        data[c.get(qn("w:id"))] = {
            "author": c.get(qn("w:author")) or "Unknown",
            "text": "".join(text_parts).strip(),
            "date": c.get(qn("w:date")) or "",
        }
    return data


def _comment_reference_rpr():
    rPr = create_element("w:rPr")
    rStyle = create_element("w:rStyle")
    create_attribute(rStyle, "w:val", "CommentReference")
    rPr.append(rStyle)
    return rPr
