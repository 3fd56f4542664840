"""Directory synchronization for s3lambo - recursive upload to a bucket."""

from .engine import SyncEngine
from .keys import build_key, is_ignored
from .operations import SyncOperations
from .request import SyncRequest

__all__ = [
    "SyncEngine",
    "SyncOperations",
    "SyncRequest",
    "build_key",
    "is_ignored",
]
