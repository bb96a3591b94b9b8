import datetime
from typing import Optional

import structlog
from docx.oxml.ns import nsmap, qn

from redliner.models import Author
from redliner.utils.docx import REVISION_TAGS, create_attribute, create_element, is_property_element

logger = structlog.get_logger(__name__)

# Register w16du namespace for dateUtc
w16du_ns = "http://schemas.microsoft.com/office/word/2023/wordml/word16du"
if "w16du" not in nsmap:
    nsmap["w16du"] = w16du_ns

# w15 carries the author identity (userId/providerId)
w15_ns = "http://schemas.microsoft.com/office/word/2012/wordml"
if "w15" not in nsmap:
    nsmap["w15"] = w15_ns

# Every element type whose w:id shares the revision id space.
REVISION_ID_TAGS = ["w:ins", "w:del", "w:moveFrom", "w:moveTo", "w:rPrChange", "w:pPrChange"]


def utc_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


class RevisionStamper:
    """
    Hands out revision ids for one session and decorates tracked-change
    elements with author and date. Ids continue after the highest id already
    present in the body and never repeat.
    """

    def __init__(self, doc, author: Author, timestamp: Optional[str] = None):
        self.author = author
        self.timestamp = timestamp or utc_timestamp()
        self.current_id = self._scan_existing_ids(doc)

    @staticmethod
    def _scan_existing_ids(doc) -> int:
        max_id = 0
        body = doc.element.body
        for tag in REVISION_ID_TAGS:
            for el in body.xpath(f".//{tag}"):
                try:
                    val = int(el.get(qn("w:id")))
                except (ValueError, TypeError):
                    continue
                if val > max_id:
                    max_id = val
        logger.debug("Revision ids seeded", max_existing_id=max_id)
        return max_id

    def next_id(self) -> int:
        self.current_id += 1
        return self.current_id

    def stamp(self, element, revision_id: Optional[int] = None) -> int:
        """Sets id, author and date on `element`. Returns the id used."""
        if revision_id is None:
            revision_id = self.next_id()
        create_attribute(element, "w:id", str(revision_id))
        create_attribute(element, "w:author", self.author.name)
        create_attribute(element, "w:date", self.timestamp)
        create_attribute(element, "w16du:dateUtc", self.timestamp)
        if self.author.email:
            create_attribute(element, "w15:userId", self.author.email)
            create_attribute(element, "w15:providerId", "None")
        return revision_id

    def create(self, tag_name: str):
        tag = create_element(tag_name)
        self.stamp(tag)
        return tag

    def restamp_properties(self, element):
        """
        A copied <w:rPr> brings its <w:rPrChange> along. Each copy gets an
        id of its own so no two revision marks share one.
        """
        for change in element.iter(qn("w:rPrChange")):
            change.set(qn("w:id"), str(self.next_id()))

    def restamp_clone(self, element):
        """Clones of split <w:ins>/<w:moveTo> containers need an id of their own."""
        if element.tag in REVISION_TAGS:
            element.set(qn("w:id"), str(self.next_id()))
        # Only the copied properties; moved content keeps its ids.
        for child in element:
            if is_property_element(child):
                self.restamp_properties(child)
