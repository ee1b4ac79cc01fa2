"""Utility functions for object paths, percent-encoding and hex encoding."""

from __future__ import annotations

import re
import string

from .exceptions import InvalidPathError

DELIMITER = "/"

_UNRESERVED = frozenset((string.ascii_letters + string.digits).encode("ascii"))


def normalize_path(path: str) -> str:
    """Normalize an object path by removing empty segments and surrounding slashes.

    Parameters
    ----------
    path : str
        Raw path string.

    Returns
    -------
    str
        Normalized path string.

    Raises
    ------
    InvalidPathError
        If a segment is "." or "..".
    """
    # Remove double slashes
    path = re.sub(r"/+", DELIMITER, path)
    path = path.strip(DELIMITER)
    for segment in path.split(DELIMITER):
        if segment in (".", ".."):
            raise InvalidPathError(path, f"segment {segment!r} is not allowed")
    return path


def percent_encode(value: str) -> str:
    """Percent-encode every byte of ``value`` that is not an ASCII letter or digit.

    This is stricter than :func:`urllib.parse.quote`, which leaves ``-._~`` and
    ``/`` alone; object URLs and copy sources are encoded this way so that the
    whole path travels as a single URL segment.
    """
    return "".join(
        chr(b) if b in _UNRESERVED else f"%{b:02X}"
        for b in value.encode("utf-8")
    )


def hex_encode(data: bytes) -> str:
    """Return the lowercase hex representation of ``data``."""
    return data.hex()


def path_prefix(prefix: str | None) -> str | None:
    """Turn a directory-like prefix into a listing prefix ending with a delimiter."""
    if not prefix:
        return None
    prefix = normalize_path(prefix)
    if not prefix:
        return None
    return f"{prefix}{DELIMITER}"


def path_extension(path: str) -> str | None:
    """Return the extension of the last path segment, without the dot."""
    basename = path.split(DELIMITER)[-1]
    if "." not in basename:
        return None
    extension = basename.rsplit(".", 1)[-1]
    return extension or None
