"""
Session configuration: loading and validating the edit payload, and
logging setup shared by the command line tools.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import structlog
from pydantic import ValidationError

from redliner.errors import ConfigError
from redliner.models import Edit, EditConfig

logger = structlog.get_logger(__name__)


def configure_logging(verbose: bool = False, json_output: bool = False):
    """All logs go to stderr; stdout is reserved for command output."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(stream=sys.stderr, level=level, force=True)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _parse_json(text: str, source: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {source}: {e}") from e


def _read_json_file(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    return _parse_json(text, str(path))


def parse_config(data: Any) -> EditConfig:
    """
    Validates a decoded payload. A bare list is taken as the edits array.
    """
    if isinstance(data, list):
        data = {"edits": data}
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a JSON object or an array of edits, got {type(data).__name__}")
    try:
        return EditConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e


def load_config(
    config_path: Optional[Path] = None,
    inline: Optional[str] = None,
    input_path: Optional[Path] = None,
    output_path: Optional[Path] = None,
    edits_path: Optional[Path] = None,
    author_name: Optional[str] = None,
    author_email: Optional[str] = None,
) -> EditConfig:
    """
    Builds the session config from exactly one source (a config file, an
    inline JSON string, or an edits file) and lets the explicit flags
    override what that source says.
    """
    sources = [s for s in (config_path, inline, edits_path) if s is not None]
    if len(sources) > 1:
        raise ConfigError("Use only one of --config, --inline or --edits")

    if config_path is not None:
        data = _read_json_file(config_path)
    elif inline is not None:
        data = _parse_json(inline, "--inline")
    elif edits_path is not None:
        data = _read_json_file(edits_path)
    else:
        raise ConfigError("No edits given: use --config, --inline or --edits")

    if isinstance(data, list):
        data = {"edits": data}
    if isinstance(data, dict):
        data = dict(data)
        if input_path is not None:
            data["input"] = str(input_path)
        if output_path is not None:
            data["output"] = str(output_path)
        if author_name is not None or author_email is not None:
            author = dict(data.get("author") or {})
            if author_name is not None:
                author["name"] = author_name
            if author_email is not None:
                author["email"] = author_email
            data["author"] = author

    config = parse_config(data)
    logger.debug("Config loaded", edits=len(config.edits), author=config.author.name)
    return config


def load_edits(path: Path) -> List[Edit]:
    """Edits from a JSON file holding an edits array or a full config."""
    return parse_config(_read_json_file(path)).edits
