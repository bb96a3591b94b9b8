from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Tuple

import structlog
from docx.document import Document as DocumentObject

from redliner.utils.docx import get_run_text, iter_body_paragraphs, iter_visible_runs

logger = structlog.get_logger(__name__)

PARAGRAPH_SEPARATOR = "\n"


@dataclass
class RunSpan:
    """
    A slice of the flattened text.
    `run` is the <w:r> element owning the slice, or None for the virtual
    separator emitted between paragraphs.
    """

    start: int
    end: int
    text: str
    run: Optional[object]
    paragraph: Optional[object]

    @property
    def is_virtual(self) -> bool:
        return self.run is None


class DocumentMapper:
    """
    Flattens the visible runs of the document body into one string and maps
    offsets in that string back to (span index, intra-span offset).

    The view is the "accepted" one: text inside <w:ins> is included, text
    inside <w:del> is not. The mapper never modifies the document; call
    rebuild() after the run structure changes.
    """

    def __init__(self, doc: DocumentObject):
        self.doc = doc
        self.full_text = ""
        self.spans: List[RunSpan] = []
        self._starts: List[int] = []
        self._build_map()

    def rebuild(self):
        self._build_map()

    def _build_map(self):
        self.spans = []
        pieces: List[str] = []
        current = 0

        for p_index, paragraph in enumerate(iter_body_paragraphs(self.doc)):
            p = paragraph._p
            if p_index > 0:
                self.spans.append(RunSpan(current, current + 1, PARAGRAPH_SEPARATOR, None, None))
                pieces.append(PARAGRAPH_SEPARATOR)
                current += 1

            for r in iter_visible_runs(p):
                text = get_run_text(r)
                if not text:
                    continue
                self.spans.append(RunSpan(current, current + len(text), text, r, p))
                pieces.append(text)
                current += len(text)

        self.full_text = "".join(pieces)
        self._starts = [span.start for span in self.spans]
        logger.debug("Document flattened", chars=len(self.full_text), spans=len(self.spans))

    def locate(self, offset: int) -> Tuple[int, int]:
        """
        Resolves a buffer offset to (span index, intra offset).
        An offset on a boundary belongs to the span that starts there; the end
        of the buffer resolves to (len(spans), 0).
        """
        if offset < 0 or offset > len(self.full_text):
            raise IndexError(f"Offset {offset} outside text of length {len(self.full_text)}")
        if offset == len(self.full_text):
            return len(self.spans), 0

        index = bisect_right(self._starts, offset) - 1
        return index, offset - self.spans[index].start

    def text_of(self, start: int, end: int) -> str:
        return self.full_text[start:end]

    def context(self, start: int, end: int, width: int = 20) -> str:
        left = max(0, start - width)
        right = min(len(self.full_text), end + width)
        snippet = self.full_text[left:right].replace("\n", " ")
        return f"{'...' if left else ''}{snippet}{'...' if right < len(self.full_text) else ''}"
