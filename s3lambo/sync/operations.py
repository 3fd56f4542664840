"""Single-file upload used by the sync engine."""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

from ..api import S3Client
from ..exceptions import S3LamboError
from ..utils import detect_content_type

logger = logging.getLogger(__name__)


class SyncOperations:
    """Upload operations shared by the sync engine and the CLI."""

    def __init__(self, client: S3Client):
        """Initialize sync operations.

        Args:
            client: S3 client
        """
        self.client = client

    def upload_file(
        self,
        path: Union[str, Path],
        bucket: Optional[str],
        key: Optional[str],
        content_type: Optional[str] = None,
        extra_args: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Upload a local file to ``bucket/key`` as a stream.

        Args:
            path: Local file path
            bucket: Destination bucket
            key: Destination key
            content_type: Media type (detected from the file name if omitted)
            extra_args: Extra upload arguments; copied, never modified

        Returns:
            True once the object is stored

        Raises:
            S3LamboError: FILESYSTEM if the file cannot be opened or read,
                BACKEND if the storage service rejects the upload
        """
        # symlinks are not resolved: the entry name drives the content type
        file_path = Path(os.path.abspath(path))
        content_type = content_type or detect_content_type(file_path)
        args = dict(extra_args or {})

        try:
            stream = open(file_path, "rb")
        except OSError as e:
            raise S3LamboError.filesystem(
                f"unable to upload file {file_path}, {e}", path=str(file_path)
            ) from e

        with stream:
            try:
                self.client.put_object(bucket, key, stream, content_type, args)
            except OSError as e:
                raise S3LamboError.filesystem(
                    f"unable to read file {file_path}, {e}", path=str(file_path)
                ) from e

        logger.debug("Uploaded %s to %s/%s", file_path, bucket, key)
        return True
