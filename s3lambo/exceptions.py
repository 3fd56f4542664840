"""Error type raised by s3lambo operations."""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Classification of an s3lambo failure."""

    FILESYSTEM = "FS_ERROR"
    """Local path missing, not a directory, unreadable, or failed to open"""

    BACKEND = "AWS_ERROR"
    """Storage service rejected the request (auth, network, validation, ...)"""

    NOT_FOUND = "AWS_NO_SUCH_KEY"
    """Storage service reported that the requested key does not exist"""


class S3LamboError(Exception):
    """Error raised by every s3lambo operation.

    Instead of a class per failure type, the error carries a ``kind`` and a
    context mapping (``path``, ``bucket``, ``key``) describing the offending
    resource. The underlying exception, if any, is chained as ``__cause__``.

    Examples:
        >>> err = S3LamboError.filesystem("/tmp/x is not a directory", path="/tmp/x")
        >>> err.kind
        <ErrorKind.FILESYSTEM: 'FS_ERROR'>
        >>> err.context
        {'path': '/tmp/x'}
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        path: Optional[str] = None,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = path
        self.bucket = bucket
        self.key = key

    @property
    def code(self) -> str:
        """Stable string code of the error kind."""
        return self.kind.value

    @property
    def context(self) -> dict[str, Any]:
        """Resource context of the failure, only the fields that are set."""
        fields = {"path": self.path, "bucket": self.bucket, "key": self.key}
        return {name: value for name, value in fields.items() if value is not None}

    @property
    def is_filesystem(self) -> bool:
        return self.kind is ErrorKind.FILESYSTEM

    @property
    def is_backend(self) -> bool:
        """True for backend errors, including the not-found case."""
        return self.kind in (ErrorKind.BACKEND, ErrorKind.NOT_FOUND)

    @property
    def is_not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND

    @classmethod
    def filesystem(cls, message: str, path: Optional[str] = None) -> "S3LamboError":
        return cls(ErrorKind.FILESYSTEM, message, path=path)

    @classmethod
    def backend(
        cls,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ) -> "S3LamboError":
        return cls(ErrorKind.BACKEND, message, bucket=bucket, key=key)

    @classmethod
    def not_found(
        cls,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ) -> "S3LamboError":
        return cls(ErrorKind.NOT_FOUND, message, bucket=bucket, key=key)

    def __repr__(self) -> str:
        return f"S3LamboError({self.code}, {self.message!r}, {self.context!r})"
