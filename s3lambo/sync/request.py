"""Directory synchronization request."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union


@dataclass(frozen=True)
class SyncRequest:
    """Parameters of one directory synchronization.

    Requests are immutable; recursive descents derive a new request with
    :func:`dataclasses.replace`, so concurrent branches never share state.

    Examples:
        >>> request = SyncRequest(
        ...     path="./site",
        ...     bucket="my-bucket",
        ...     root_key="public",
        ...     ignore=[".DS_Store", "drafts/"],
        ... )
        >>> request.ignore == frozenset({".DS_Store", "drafts/"})
        True
    """

    path: Path
    """Local directory to mirror"""

    bucket: Optional[str]
    """Destination bucket"""

    extra_args: Mapping[str, Any] = field(default_factory=dict, hash=False)
    """Upload arguments applied to every object (ACL, CacheControl, ...)"""

    root_key: str = ""
    """Key prefix of the directory ("" for the bucket root)"""

    ignore: frozenset[str] = frozenset()
    """Substrings excluding any key that contains them"""

    def __post_init__(self) -> None:
        path: Union[str, Path] = self.path
        object.__setattr__(self, "path", Path(path))
        object.__setattr__(self, "root_key", self.root_key or "")
        ignore: Optional[Iterable[str]] = self.ignore
        object.__setattr__(self, "ignore", frozenset(ignore or ()))
        object.__setattr__(self, "extra_args", dict(self.extra_args or {}))

    def upload_args(self) -> dict[str, Any]:
        """Return a private copy of the upload arguments for one upload."""
        return dict(self.extra_args)
