"""Escaping of relative paths for path-addressed Graph item locators."""

from urllib.parse import quote

# Characters the path-addressing scheme accepts literally inside a segment.
# '%' is absent so literal percent signs are always escaped first; ':' is
# absent so a segment can never close the '<root>:/<path>:' locator early.
_LITERAL_CHARS = "/'()[]!$&+,;=@~"


def normalize_separators(path: str) -> str:
    """Convert Windows separators and drop empty segments."""
    segments = path.replace('\\', '/').split('/')
    return '/'.join(segment for segment in segments if segment)


def encode(relative_path: str) -> str:
    """
    Escape a relative child path for inclusion in a path-addressed locator.

    Args:
        relative_path: Path using either '/' or '\\' separators

    Returns:
        Escaped path using '/' separators
    """
    return quote(normalize_separators(relative_path), safe=_LITERAL_CHARS)


def join(prefix: str | None, relative_path: str) -> str:
    """Join an optional fixed prefix and a child path, then escape the result."""
    if prefix:
        return encode(f"{prefix}/{relative_path}")
    return encode(relative_path)
