"""Destination key construction and key-based exclusion."""

import posixpath
from collections.abc import Iterable
from typing import Optional


def build_key(root_key: str, name: str) -> str:
    """Compute the destination key of an entry below ``root_key``.

    Keys always use forward slashes, whatever the host OS, and redundant
    separators are collapsed.

    Args:
        root_key: Key prefix of the directory holding the entry ("" for the
            bucket root)
        name: Entry name (a single path segment)

    Returns:
        The composed key

    Examples:
        >>> build_key("", "a.txt")
        'a.txt'
        >>> build_key("public/test/", "x.txt")
        'public/test/x.txt'
        >>> build_key("public//test", "x.txt")
        'public/test/x.txt'
    """
    key = posixpath.join(root_key or "", name)
    # normpath keeps a leading "//" as is
    if key.startswith("//"):
        key = "/" + key.lstrip("/")
    return posixpath.normpath(key)


def is_ignored(key: str, ignore: Optional[Iterable[str]]) -> bool:
    """Check whether ``key`` contains any of the ``ignore`` substrings.

    Matching is a case-sensitive containment test against the full key, so
    ``"sub/"`` excludes every key below a ``sub`` directory.

    Examples:
        >>> is_ignored("sub/c/d.txt", {"sub/"})
        True
        >>> is_ignored("a.txt", {"sub/"})
        False
        >>> is_ignored("a.txt", None)
        False
    """
    if not ignore:
        return False
    return any(fragment in key for fragment in ignore)
