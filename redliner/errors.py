class RedlinerError(Exception):
    """Base class for hard failures. Skips are reported, never raised."""


class RunModelError(RedlinerError):
    """
    The document body holds a run the engine cannot read safely.
    Raised while flattening, before the current edit mutates anything.
    """


class ConfigError(RedlinerError):
    """The session configuration (edits, author, paths) failed validation."""
