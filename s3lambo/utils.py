"""Utility functions for s3lambo."""

import mimetypes
from pathlib import Path
from typing import Union

# =============================================================================
# Constants
# =============================================================================

# Content type used when the extension is unknown
DEFAULT_CONTENT_TYPE: str = "application/octet-stream"

# Connection pool size of the boto3 client; sync fans out one thread per entry
DEFAULT_MAX_POOL_CONNECTIONS: int = 50

# Default AWS region when neither config nor environment provide one
DEFAULT_REGION: str = "us-east-1"


# =============================================================================
# Content type utilities
# =============================================================================


def detect_content_type(path_or_key: Union[str, Path]) -> str:
    """Resolve the media type of a file path or object key from its extension.

    Args:
        path_or_key: Local file path or S3 key

    Returns:
        MIME type string (defaults to 'application/octet-stream')

    Examples:
        >>> detect_content_type("public/data.json")
        'application/json'
        >>> detect_content_type("archive.unknownext")
        'application/octet-stream'
    """
    mime_type, _ = mimetypes.guess_type(str(path_or_key))
    return mime_type or DEFAULT_CONTENT_TYPE


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
