import re
from dataclasses import dataclass
from typing import Dict, List, Tuple

import structlog
from diff_match_patch import diff_match_patch

from redliner.models import Edit
from redliner.redline.finder import find_matches

logger = structlog.get_logger(__name__)

TOKEN_PATTERN = r"(\s+|\w+|[^\w\s])"


@dataclass
class Hunk:
    start: int
    deleted: str
    inserted: str

    @property
    def end(self) -> int:
        return self.start + len(self.deleted)


def generate_edits_from_text(original_text: str, modified_text: str) -> List[Edit]:
    """
    Compares original and modified text and returns the literal edits that turn
    one into the other. Uses word-level diffing for natural, readable redlines.

    Edits come back last-to-first. Each carries the occurrence index its
    `find` has in the text as left by the edits before it in the list, so
    applying them in order reproduces `modified_text`.
    """
    hunks = diff_hunks(original_text, modified_text)

    edits: List[Edit] = []
    current = original_text
    for hunk in reversed(hunks):
        find, replace, occurrence, start = _locate_hunk(current, hunk)
        edits.append(Edit(find=find, replace=replace, occurrence=occurrence))
        current = current[:start] + replace + current[start + len(find) :]

    logger.info("Diff computed", hunks=len(hunks), edits=len(edits))
    return edits


def diff_hunks(original_text: str, modified_text: str) -> List[Hunk]:
    dmp = diff_match_patch()

    # 1. Word-Level Tokenization & Encoding
    chars1, chars2, token_array = _words_to_chars(original_text, modified_text)

    # 2. Compute Diff on the Encoded Strings
    diffs = dmp.diff_main(chars1, chars2, False)

    # 3. Semantic Cleanup
    dmp.diff_cleanupSemantic(diffs)

    # 4. Decode back to Text
    dmp.diff_charsToLines(diffs, token_array)

    hunks: List[Hunk] = []
    index = 0
    pending = None
    for op, text in diffs:
        if op == 0:
            if pending:
                hunks.append(pending)
                pending = None
            index += len(text)
            continue

        if pending is None:
            pending = Hunk(index, "", "")
        if op == -1:
            pending.deleted += text
            index += len(text)
        else:
            pending.inserted += text

    if pending:
        hunks.append(pending)
    return hunks


def _locate_hunk(text: str, hunk: Hunk) -> Tuple[str, str, int, int]:
    """
    Picks a `find` string for the hunk and its occurrence index in `text`.
    Pure insertions are anchored on the token before them (or after them at
    the very start). When the leftmost-first scan would not land on the hunk,
    the find is widened to the left until it does.
    """
    start, end = hunk.start, hunk.end
    prefix, suffix = "", ""

    if not hunk.deleted:
        if start > 0:
            tokens = [t for t in re.split(TOKEN_PATTERN, text[:start]) if t]
            prefix = tokens[-1]
            start -= len(prefix)
        else:
            tokens = [t for t in re.split(TOKEN_PATTERN, text) if t]
            suffix = tokens[0] if tokens else ""
            end += len(suffix)

    while True:
        find = text[start:end]
        for match in find_matches(text, find):
            if match.start == start:
                return find, prefix + hunk.inserted + suffix, match.occurrence, start
            if match.start > start:
                break
        if start == 0:
            # Only an empty original document has nothing to anchor on.
            raise ValueError(f"Cannot anchor change at offset {hunk.start}")
        start -= 1
        prefix = text[start] + prefix


def _words_to_chars(text1: str, text2: str) -> Tuple[str, str, List[str]]:
    """
    Splits text into words/tokens and encodes them as unique Unicode characters.
    """
    token_array: List[str] = []
    token_hash: Dict[str, int] = {}

    def encode_text(text: str) -> str:
        tokens = [t for t in re.split(TOKEN_PATTERN, text) if t]
        encoded_chars = []
        for token in tokens:
            if token in token_hash:
                encoded_chars.append(chr(token_hash[token]))
            else:
                code = len(token_array)
                token_hash[token] = code
                token_array.append(token)
                encoded_chars.append(chr(code))
        return "".join(encoded_chars)

    chars1 = encode_text(text1)
    chars2 = encode_text(text2)
    return chars1, chars2, token_array
