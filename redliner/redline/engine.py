from copy import deepcopy
from io import BytesIO
from typing import List, Optional, Union

import structlog
from docx import Document
from docx.oxml.ns import qn

from redliner.models import Author, ChangeNode, Edit, EditResult, SessionResult, SkipReason
from redliner.redline.comments import CommentsManager
from redliner.redline.finder import Match, find_matches, resolve_matches, skip_reason
from redliner.redline.mapper import DocumentMapper
from redliner.redline.splitter import split_container_after, split_container_before, split_run
from redliner.redline.stamper import RevisionStamper
from redliner.utils.docx import (
    CONTAINER_TAGS,
    HIDDEN_TAGS,
    create_element,
    get_run_text,
    is_property_element,
    normalize_docx,
    set_text_content,
)

logger = structlog.get_logger(__name__)

# Run children that change name once their run is deleted.
DELETED_TAGS = {
    qn("w:t"): "w:delText",
    qn("w:instrText"): "w:delInstrText",
}


class RedlineEngine:
    """
    Applies literal find/replace edits to a DOCX as tracked changes.

    Edits run in list order. Each edit re-reads the document text, so text
    inserted by an earlier edit can be found by a later one, while text it
    deleted cannot.
    """

    def __init__(
        self,
        doc_stream: BytesIO,
        author: Union[Author, str, None] = None,
        timestamp: Optional[str] = None,
        normalize: bool = False,
    ):
        try:
            self.doc = Document(doc_stream)
        except Exception as e:
            raise ValueError(f"Could not open document: {e}") from e

        if normalize:
            normalize_docx(self.doc)

        if isinstance(author, Author):
            self.author = author
        elif author:
            self.author = Author(name=author)
        else:
            self.author = Author()

        self.stamper = RevisionStamper(self.doc, self.author, timestamp)
        self.timestamp = self.stamper.timestamp
        self._comments_manager: Optional[CommentsManager] = None

    @property
    def comments_manager(self) -> CommentsManager:
        # Created on first use so documents without comments gain no parts.
        if self._comments_manager is None:
            self._comments_manager = CommentsManager(self.doc)
        return self._comments_manager

    def accepted_text(self) -> str:
        return DocumentMapper(self.doc).full_text

    def apply_edits(self, edits: List[Edit]) -> SessionResult:
        session = SessionResult()
        for index, edit in enumerate(edits):
            session.results.append(self.apply_edit(edit, index))
        logger.info("Session complete", applied=session.applied, skipped=session.skipped)
        return session

    def apply_edit(self, edit: Edit, index: int = 0) -> EditResult:
        result = EditResult(index=index, edit=edit)

        mapper = DocumentMapper(self.doc)
        matches = find_matches(mapper.full_text, edit.find)
        selected = resolve_matches(matches, edit.occurrence, edit.all)

        if not selected:
            result.reason = skip_reason(matches, edit.occurrence, edit.all)
            logger.warning(
                "Skipping edit",
                index=index,
                find=edit.find,
                occurrence=edit.occurrence,
                found=len(matches),
                reason=result.reason.value,
            )
            return result

        # Right to left: patching a match never moves the offsets of the ones before it.
        for match in sorted(selected, key=lambda m: m.start, reverse=True):
            node = self._patch_match(mapper, match, edit)
            if node is None:
                continue
            result.change_nodes.append(node)
            if node.comment_id is not None:
                result.comment_ids.append(node.comment_id)

        result.change_nodes.reverse()
        result.comment_ids.reverse()
        result.applied_count = len(result.change_nodes)

        if result.applied_count == 0:
            result.reason = SkipReason.CROSSES_PARAGRAPH
            logger.warning("Skipping edit", index=index, find=edit.find, reason=result.reason.value)
        else:
            logger.info("Applied edit", index=index, find=edit.find, occurrence=edit.occurrence, applied=result.applied_count)
        return result

    def _patch_match(self, mapper: DocumentMapper, match: Match, edit: Edit) -> Optional[ChangeNode]:
        first_idx, first_off = mapper.locate(match.start)
        last_idx, last_off = mapper.locate(match.end - 1)
        spans = mapper.spans[first_idx : last_idx + 1]

        if any(span.is_virtual for span in spans):
            logger.debug("Match crosses a paragraph boundary", start=match.start, end=match.end)
            return None

        paragraph = spans[0].paragraph
        first_run = spans[0].run
        last_run = spans[-1].run
        logger.debug("Patching match", occurrence=match.occurrence, start=match.start, end=match.end, runs=len(spans))

        # Built before anything moves: text lxml refuses fails here, with the body untouched.
        new_run = None
        if edit.replace:
            new_run = self._build_insertion_run(edit.replace, last_run)

        restamp = self.stamper.restamp_properties
        end_local = last_off + 1
        if end_local < len(get_run_text(last_run)):
            split_run(last_run, end_local, restamp, boundary_right=True)
        if first_off > 0:
            _, right = split_run(first_run, first_off, restamp)
            if first_run is last_run:
                last_run = right
            first_run = right

        first_top = split_container_before(first_run, paragraph, self.stamper.restamp_clone)
        last_top = split_container_after(last_run, paragraph, self.stamper.restamp_clone)
        group = [first_top]
        while group[-1] is not last_top:
            group.append(group[-1].getnext())

        deleted_text = mapper.text_of(match.start, match.end)

        if edit.comment_only:
            comment_id = self._add_comment(edit.comment, group[0], group[-1])
            return ChangeNode(
                revision_id=None,
                deletions=[],
                insertion=None,
                author=self.author.name,
                email=self.author.email,
                date=self.timestamp,
                comment=edit.comment,
                comment_id=comment_id,
                deleted_text="",
                inserted_text="",
            )

        deletions = self._wrap_deletion(group)
        insertion = None
        if new_run is not None:
            insertion = self.stamper.create("w:ins")
            insertion.append(new_run)
            _top_level(deletions[-1], paragraph).addnext(insertion)

        comment_id = None
        if edit.comment:
            last = insertion if insertion is not None else _top_level(deletions[-1], paragraph)
            comment_id = self._add_comment(edit.comment, _top_level(deletions[0], paragraph), last)

        return ChangeNode(
            revision_id=int(deletions[0].get(qn("w:id"))),
            deletions=deletions,
            insertion=insertion,
            author=self.author.name,
            email=self.author.email,
            date=self.timestamp,
            comment=edit.comment,
            comment_id=comment_id,
            deleted_text=deleted_text,
            inserted_text=edit.replace,
        )

    def _wrap_deletion(self, items) -> List:
        """
        Moves consecutive runs of `items` into <w:del> wrappers and returns the
        wrappers in document order. Containers are handled from the inside, so
        deleting inserted text nests the <w:del> in that <w:ins>.
        """
        deletions = []
        current = None
        for item in list(items):
            tag = item.tag
            if tag == qn("w:r"):
                if current is None:
                    current = self.stamper.create("w:del")
                    item.addprevious(current)
                    deletions.append(current)
                current.append(item)
                self._mark_deleted(item)
            elif tag in HIDDEN_TAGS:
                current = None
            elif tag in CONTAINER_TAGS:
                current = None
                deletions.extend(self._wrap_deletion(c for c in item if not is_property_element(c)))
            elif current is not None:
                # Range markers (bookmarks, comment anchors) between deleted runs.
                current.append(item)
        return deletions

    def _mark_deleted(self, run):
        for child in list(run):
            new_tag = DELETED_TAGS.get(child.tag)
            if new_tag is None:
                continue
            replacement = create_element(new_tag)
            set_text_content(replacement, child.text or "")
            run.replace(child, replacement)

    def _build_insertion_run(self, text: str, style_source):
        new_run = create_element("w:r")
        rPr = style_source.find(qn("w:rPr"))
        if rPr is not None:
            new_run.append(deepcopy(rPr))
            self.stamper.restamp_properties(new_run)
        # python-docx turns \t and \n into <w:tab/> and <w:br/>
        new_run.text = text
        return new_run

    def _add_comment(self, text: str, first, last) -> str:
        comment_id = self.comments_manager.add_comment(self.author, text, self.timestamp)
        self.comments_manager.anchor(comment_id, first, last)
        return comment_id

    def save_to_stream(self) -> BytesIO:
        output = BytesIO()
        self.doc.save(output)
        output.seek(0)
        return output

    def save(self, path):
        self.doc.save(str(path))


def _top_level(element, paragraph):
    while element.getparent() is not paragraph:
        element = element.getparent()
    return element
