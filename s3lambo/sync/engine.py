"""Core sync engine: recursive directory-to-bucket upload."""

import logging
import os
import stat
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import Optional

from ..api import S3Client
from ..exceptions import S3LamboError
from .keys import build_key, is_ignored
from .operations import SyncOperations
from .request import SyncRequest

logger = logging.getLogger(__name__)


class SyncEngine:
    """Uploads a local directory tree to a bucket.

    Every directory level gets its own thread pool: all entries of a level
    are processed concurrently (uploads for files, recursive calls for
    subdirectories) and the level only returns once all of them settled.
    """

    def __init__(self, client: S3Client, max_workers: Optional[int] = None):
        """Initialize sync engine.

        Args:
            client: S3 client
            max_workers: Upper bound of concurrent entries per directory level
                (default: one worker per entry)
        """
        self.client = client
        self.max_workers = max_workers
        self.operations = SyncOperations(client)

    def sync_directory(self, request: SyncRequest) -> bool:
        """Upload ``request.path`` and its subdirectories recursively.

        The key of each file is its path relative to ``request.path`` joined
        to ``request.root_key``. Entries whose key contains one of the
        ``request.ignore`` substrings are skipped along with their subtree.

        Args:
            request: Sync request

        Returns:
            True when every file has been uploaded

        Raises:
            S3LamboError: the first failure observed; sibling uploads already
                running are left to finish

        Examples:
            >>> engine = SyncEngine(S3Client())
            >>> engine.sync_directory(
            ...     SyncRequest(path="./dist", bucket="my-bucket", root_key="public")
            ... )
            True
        """
        dir_path = self._resolve_directory(request.path)
        names = self._list_directory(dir_path)

        start = time.time()
        logger.debug("uploading directory %s (%d entries)...", dir_path, len(names))

        if names:
            workers = len(names)
            if self.max_workers:
                workers = min(workers, self.max_workers)

            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="s3lambo-sync"
            ) as executor:
                futures = [
                    executor.submit(self._sync_entry, request, dir_path, name)
                    for name in names
                ]
                self._wait_all(futures, dir_path)

        logger.debug(
            "directory %s successfully uploaded in %.2fs", dir_path, time.time() - start
        )
        return True

    def _resolve_directory(self, path: Path) -> Path:
        """Return the absolute directory path, or fail if it is not a directory."""
        dir_path = Path(os.path.abspath(path))
        try:
            stats = dir_path.stat()
        except OSError as e:
            raise S3LamboError.filesystem(
                f"unable to upload directory {dir_path}, {e}", path=str(dir_path)
            ) from e
        if not stat.S_ISDIR(stats.st_mode):
            raise S3LamboError.filesystem(
                f"{dir_path} is not a directory", path=str(dir_path)
            )
        return dir_path

    def _list_directory(self, dir_path: Path) -> list[str]:
        try:
            return sorted(os.listdir(dir_path))
        except OSError as e:
            raise S3LamboError.filesystem(
                f"unable to read directory {dir_path}, {e}", path=str(dir_path)
            ) from e

    def _wait_all(self, futures: list[Future], dir_path: Path) -> None:
        """Wait for every future, then re-raise the first failure."""
        first_error: Optional[BaseException] = None
        failures = 0
        for future in as_completed(futures):
            error = future.exception()
            if error is None:
                continue
            failures += 1
            if first_error is None:
                first_error = error
            else:
                logger.debug("Additional failure in %s: %s", dir_path, error)

        if first_error is not None:
            logger.debug("%d failure(s) while uploading %s", failures, dir_path)
            raise first_error

    def _sync_entry(self, request: SyncRequest, dir_path: Path, name: str) -> None:
        """Upload one file or descend into one subdirectory."""
        entry_path = dir_path / name
        try:
            stats = entry_path.stat()
        except OSError as e:
            raise S3LamboError.filesystem(
                f"unable to read {entry_path}, {e}", path=str(entry_path)
            ) from e

        key = build_key(request.root_key, name)
        if is_ignored(key, request.ignore):
            logger.debug("Ignoring %s", key)
            return

        if stat.S_ISREG(stats.st_mode):
            self.operations.upload_file(
                entry_path,
                request.bucket,
                key,
                extra_args=request.upload_args(),
            )
        elif stat.S_ISDIR(stats.st_mode):
            self.sync_directory(replace(request, path=entry_path, root_key=key))
        else:
            logger.debug("Skipping %s (not a regular file or directory)", entry_path)

