from io import BytesIO
from pathlib import Path
from typing import List, Tuple

import structlog

from redliner.errors import ConfigError
from redliner.ingest import load_document
from redliner.models import EditConfig, SessionResult
from redliner.redline.engine import RedlineEngine
from redliner.redline.finder import Match, find_matches
from redliner.redline.mapper import DocumentMapper

logger = structlog.get_logger(__name__)


def read_file_bytes(path: Path) -> BytesIO:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    with open(path, "rb") as f:
        return BytesIO(f.read())


def _engine_for(config: EditConfig, normalize: bool) -> RedlineEngine:
    if config.input is None:
        raise ConfigError("No input document given")
    return RedlineEngine(read_file_bytes(config.input), author=config.author, normalize=normalize)


def apply_config(config: EditConfig, normalize: bool = False) -> SessionResult:
    """Loads `config.input`, applies every edit in order and writes `config.output`."""
    if config.output is None:
        raise ConfigError("No output document given")

    engine = _engine_for(config, normalize)
    result = engine.apply_edits(config.edits)

    engine.save(config.output)
    logger.info("Saved document", output=str(config.output))
    return result


def validate_config(config: EditConfig, normalize: bool = False) -> SessionResult:
    """Same as apply_config() but the patched document is never written."""
    engine = _engine_for(config, normalize)
    return engine.apply_edits(config.edits)


def find_in_document(stream: BytesIO, find: str, width: int = 20) -> List[Tuple[Match, str]]:
    """Every match of `find` in the accepted text, with a snippet of context."""
    mapper = DocumentMapper(load_document(stream))
    return [(m, mapper.context(m.start, m.end, width)) for m in find_matches(mapper.full_text, find)]
