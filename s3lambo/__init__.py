"""s3lambo - S3 helpers: get, hash, list, upload and directory sync."""

from .api import S3Client
from .exceptions import ErrorKind, S3LamboError
from .sync import SyncEngine, SyncOperations, SyncRequest, build_key, is_ignored
from .utils import detect_content_type

__all__ = [
    "S3Client",
    "ErrorKind",
    "S3LamboError",
    "SyncEngine",
    "SyncOperations",
    "SyncRequest",
    "build_key",
    "is_ignored",
    "detect_content_type",
]
