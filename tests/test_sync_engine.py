"""Tests for the sync engine."""

import builtins
import os
import tempfile
import threading
import time
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from s3lambo.api import S3Client
from s3lambo.exceptions import ErrorKind, S3LamboError
from s3lambo.sync import SyncEngine, SyncRequest


class FakeBucketStore:
    """In-memory stand-in for the objects put through a mock S3 client."""

    def __init__(self):
        self.objects: dict[tuple[str, str], dict] = {}
        self.calls = 0
        self._lock = threading.Lock()

    def put_object(self, bucket, key, body, content_type, extra_args=None):
        if not bucket or not key:
            raise S3LamboError.backend(
                f"unable to upload {key} in bucket {bucket}", bucket=bucket, key=key
            )
        data = body.read()
        with self._lock:
            self.calls += 1
            self.objects[(bucket, key)] = {
                "data": data,
                "content_type": content_type,
                "extra_args": extra_args,
            }

    def keys(self, bucket="bucket") -> set[str]:
        return {key for (name, key) in self.objects if name == bucket}


def make_tree(root: Path, files: dict[str, str]) -> None:
    """Create files (relative POSIX paths) with the given content."""
    for relative_path, content in files.items():
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


class TestSyncEngine:
    """Test SyncEngine functionality."""

    @pytest.fixture
    def store(self):
        return FakeBucketStore()

    @pytest.fixture
    def mock_client(self, store):
        """Create a mock S3 client backed by an in-memory store."""
        client = Mock(spec=S3Client)
        client.put_object.side_effect = store.put_object
        return client

    @pytest.fixture
    def temp_dir(self):
        """Create a temporary directory for testing."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def sync_engine(self, mock_client):
        """Create a sync engine instance."""
        return SyncEngine(mock_client)

    def test_create_sync_engine(self, mock_client):
        """Test creating a sync engine."""
        engine = SyncEngine(mock_client, max_workers=4)
        assert engine.client == mock_client
        assert engine.max_workers == 4
        assert engine.operations.client == mock_client

    def test_one_object_per_file(self, sync_engine, store, temp_dir):
        """Test that every file is uploaded once under its relative key."""
        make_tree(
            temp_dir,
            {
                "a.txt": "a",
                "sub/b.txt": "b",
                "sub/c/d.txt": "d",
                "sub/c/e/f.json": "{}",
            },
        )

        result = sync_engine.sync_directory(
            SyncRequest(path=temp_dir, bucket="bucket")
        )

        assert result is True
        assert store.keys() == {"a.txt", "sub/b.txt", "sub/c/d.txt", "sub/c/e/f.json"}
        assert store.calls == 4
        assert store.objects[("bucket", "sub/c/d.txt")]["data"] == b"d"

    def test_content_types(self, sync_engine, store, temp_dir):
        """Test that content types follow the file extensions."""
        make_tree(temp_dir, {"a.txt": "a", "data/b.json": "{}", "blob": "x"})

        sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))

        assert store.objects[("bucket", "a.txt")]["content_type"] == "text/plain"
        assert (
            store.objects[("bucket", "data/b.json")]["content_type"]
            == "application/json"
        )
        assert (
            store.objects[("bucket", "blob")]["content_type"]
            == "application/octet-stream"
        )

    def test_empty_directory(self, sync_engine, mock_client, temp_dir):
        """Test that an empty directory succeeds with zero uploads."""
        assert sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))
        mock_client.put_object.assert_not_called()

    def test_empty_subdirectories(self, sync_engine, store, temp_dir):
        """Test that empty subdirectories produce no objects."""
        (temp_dir / "empty" / "deeper").mkdir(parents=True)
        make_tree(temp_dir, {"a.txt": "a"})

        sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))

        assert store.keys() == {"a.txt"}

    def test_root_key_prefix(self, sync_engine, store, temp_dir):
        """Test that keys are placed below the root key."""
        make_tree(temp_dir, {"x.txt": "x", "sub/y.txt": "y"})

        sync_engine.sync_directory(
            SyncRequest(path=temp_dir, bucket="bucket", root_key="public/test")
        )

        assert store.keys() == {"public/test/x.txt", "public/test/sub/y.txt"}

    def test_ignore_directory_subtree(self, sync_engine, store, temp_dir):
        """Test that ignoring a directory fragment excludes its subtree."""
        make_tree(temp_dir, {"a.txt": "a", "sub/b.txt": "b", "sub/c/d.txt": "d"})

        sync_engine.sync_directory(
            SyncRequest(path=temp_dir, bucket="bucket", ignore={"sub/"})
        )

        assert store.keys() == {"a.txt"}

    def test_ignore_applies_to_full_key(self, sync_engine, store, temp_dir):
        """Test that fragments are matched against the composed key."""
        make_tree(
            temp_dir,
            {
                "a.txt": "a",
                "b.txt": "b",
                "sub/a.txt": "a",
                "sub/subsub/c.txt": "c",
            },
        )

        sync_engine.sync_directory(
            SyncRequest(
                path=temp_dir,
                bucket="bucket",
                root_key="private",
                ignore=["a.txt", "subsub/"],
            )
        )

        assert store.keys() == {"private/b.txt"}

    def test_ignore_by_root_key_fragment(self, sync_engine, store, temp_dir):
        """Test that a fragment of the root key excludes everything."""
        make_tree(temp_dir, {"a.txt": "a", "sub/b.txt": "b"})

        sync_engine.sync_directory(
            SyncRequest(
                path=temp_dir, bucket="bucket", root_key="drafts", ignore={"drafts/"}
            )
        )

        assert store.keys() == set()

    def test_extra_args_applied_to_every_upload(self, sync_engine, store, temp_dir):
        """Test that each upload gets its own copy of the upload arguments."""
        make_tree(temp_dir, {"a.txt": "a", "sub/b.txt": "b"})
        extra_args = {"ACL": "public-read"}

        sync_engine.sync_directory(
            SyncRequest(path=temp_dir, bucket="bucket", extra_args=extra_args)
        )

        first = store.objects[("bucket", "a.txt")]["extra_args"]
        second = store.objects[("bucket", "sub/b.txt")]["extra_args"]
        assert first == second == {"ACL": "public-read"}
        assert first is not second
        assert first is not extra_args
        assert extra_args == {"ACL": "public-read"}

    def test_idempotent(self, sync_engine, store, temp_dir):
        """Test that syncing twice overwrites instead of duplicating."""
        make_tree(temp_dir, {"a.txt": "a", "sub/b.txt": "b"})
        request = SyncRequest(path=temp_dir, bucket="bucket")

        sync_engine.sync_directory(request)
        first_keys = store.keys()
        sync_engine.sync_directory(request)

        assert store.keys() == first_keys == {"a.txt", "sub/b.txt"}
        assert store.calls == 4

    def test_relative_path_resolved(self, sync_engine, store, temp_dir):
        """Test that relative paths are resolved against the cwd."""
        make_tree(temp_dir, {"site/index.html": "<html/>"})

        cwd = os.getcwd()
        os.chdir(temp_dir)
        try:
            sync_engine.sync_directory(SyncRequest(path="site", bucket="bucket"))
        finally:
            os.chdir(cwd)

        assert store.keys() == {"index.html"}

    def test_nonexistent_root(self, sync_engine, mock_client, temp_dir):
        """Test that a missing root raises a FILESYSTEM error."""
        missing = temp_dir / "nonexistent"

        with pytest.raises(S3LamboError) as exc_info:
            sync_engine.sync_directory(SyncRequest(path=missing, bucket="bucket"))

        assert exc_info.value.kind is ErrorKind.FILESYSTEM
        assert exc_info.value.path == str(missing)
        mock_client.put_object.assert_not_called()

    def test_root_is_a_file(self, sync_engine, mock_client, temp_dir):
        """Test that a regular-file root raises a FILESYSTEM error."""
        test_file = temp_dir / "test.txt"
        test_file.write_text("test")

        with pytest.raises(S3LamboError, match="not a directory") as exc_info:
            sync_engine.sync_directory(SyncRequest(path=test_file, bucket="bucket"))

        assert exc_info.value.is_filesystem
        mock_client.put_object.assert_not_called()

    def test_missing_bucket(self, sync_engine, temp_dir):
        """Test that uploads without a bucket raise a BACKEND error."""
        make_tree(temp_dir, {"a.txt": "a"})

        with pytest.raises(S3LamboError) as exc_info:
            sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket=None))

        assert exc_info.value.kind is ErrorKind.BACKEND

    def test_unreadable_nested_file(self, sync_engine, store, temp_dir):
        """Test that a file failing to open fails the whole sync."""
        make_tree(
            temp_dir,
            {
                "a.txt": "a",
                "sub/ok.txt": "ok",
                "sub/locked.bin": "secret",
                "other/c.txt": "c",
            },
        )
        real_open = builtins.open

        def guarded_open(file, *args, **kwargs):
            if Path(file).name == "locked.bin":
                raise PermissionError(13, "Permission denied", str(file))
            return real_open(file, *args, **kwargs)

        with patch("s3lambo.sync.operations.open", guarded_open, create=True):
            with pytest.raises(S3LamboError) as exc_info:
                sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))

        error = exc_info.value
        assert error.kind is ErrorKind.FILESYSTEM
        assert error.path.endswith(os.path.join("sub", "locked.bin"))
        assert isinstance(error.__cause__, PermissionError)
        # siblings are not cancelled
        assert store.keys() == {"a.txt", "sub/ok.txt", "other/c.txt"}

    def test_backend_failure_propagates(self, sync_engine, mock_client, temp_dir):
        """Test that a backend error is propagated unchanged."""
        make_tree(temp_dir, {"sub/a.txt": "a"})
        failure = S3LamboError.backend("denied", bucket="bucket", key="sub/a.txt")
        mock_client.put_object.side_effect = failure

        with pytest.raises(S3LamboError) as exc_info:
            sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))

        assert exc_info.value is failure

    def test_all_siblings_settle_before_failure(self, mock_client, temp_dir):
        """Test that the call waits for slow siblings before raising."""
        make_tree(temp_dir, {"bad.txt": "x", "slow1.txt": "x", "slow2.txt": "x"})
        finished = []
        lock = threading.Lock()

        def put_object(bucket, key, body, content_type, extra_args=None):
            if key == "bad.txt":
                raise S3LamboError.backend("denied", bucket=bucket, key=key)
            time.sleep(0.2)
            with lock:
                finished.append(key)

        mock_client.put_object.side_effect = put_object

        with pytest.raises(S3LamboError):
            SyncEngine(mock_client).sync_directory(
                SyncRequest(path=temp_dir, bucket="bucket")
            )

        assert sorted(finished) == ["slow1.txt", "slow2.txt"]

    def test_several_failures_raise_one(self, mock_client, temp_dir):
        """Test that concurrent failures surface as a single error."""
        make_tree(temp_dir, {"a.txt": "a", "b.txt": "b", "sub/c.txt": "c"})

        def put_object(bucket, key, body, content_type, extra_args=None):
            raise S3LamboError.backend("denied", bucket=bucket, key=key)

        mock_client.put_object.side_effect = put_object

        with pytest.raises(S3LamboError) as exc_info:
            SyncEngine(mock_client).sync_directory(
                SyncRequest(path=temp_dir, bucket="bucket")
            )

        assert exc_info.value.key in {"a.txt", "b.txt", "sub/c.txt"}
        assert len(mock_client.put_object.call_args_list) == 3

    def test_entries_run_concurrently(self, mock_client, temp_dir):
        """Test that sibling uploads overlap in time."""
        make_tree(temp_dir, {f"f{i}.txt": "x" for i in range(4)})
        barrier = threading.Barrier(4, timeout=5)

        def put_object(bucket, key, body, content_type, extra_args=None):
            # every upload must be in flight at once to pass the barrier
            barrier.wait()

        mock_client.put_object.side_effect = put_object

        assert SyncEngine(mock_client).sync_directory(
            SyncRequest(path=temp_dir, bucket="bucket")
        )
        assert len(mock_client.put_object.call_args_list) == 4

    def test_max_workers_limits_level(self, mock_client, temp_dir):
        """Test that max_workers bounds the concurrent entries of a level."""
        make_tree(temp_dir, {f"f{i}.txt": "x" for i in range(6)})
        active = []
        peak = []
        lock = threading.Lock()

        def put_object(bucket, key, body, content_type, extra_args=None):
            with lock:
                active.append(key)
                peak.append(len(active))
            time.sleep(0.05)
            with lock:
                active.remove(key)

        mock_client.put_object.side_effect = put_object

        SyncEngine(mock_client, max_workers=2).sync_directory(
            SyncRequest(path=temp_dir, bucket="bucket")
        )

        assert max(peak) <= 2
        assert len(mock_client.put_object.call_args_list) == 6

    def test_nested_levels_do_not_starve(self, store, mock_client, temp_dir):
        """Test that deep trees complete with a single worker per level."""
        make_tree(temp_dir, {"a/b/c/d/e.txt": "e", "a/x.txt": "x"})

        SyncEngine(mock_client, max_workers=1).sync_directory(
            SyncRequest(path=temp_dir, bucket="bucket")
        )

        assert store.keys() == {"a/b/c/d/e.txt", "a/x.txt"}

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinks_are_followed(self, sync_engine, store, temp_dir):
        """Test that symlinked files and directories are uploaded."""
        make_tree(temp_dir, {"real/a.txt": "a", "target.txt": "t"})
        root = temp_dir / "root"
        root.mkdir()
        os.symlink(temp_dir / "real", root / "linked_dir")
        os.symlink(temp_dir / "target.txt", root / "linked.txt")

        sync_engine.sync_directory(SyncRequest(path=root, bucket="bucket"))

        assert store.keys() == {"linked_dir/a.txt", "linked.txt"}

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_broken_symlink(self, sync_engine, store, temp_dir):
        """Test that a dangling symlink fails its branch with a FILESYSTEM error."""
        make_tree(temp_dir, {"a.txt": "a"})
        dangling = temp_dir / "dangling"
        os.symlink(temp_dir / "does-not-exist", dangling)

        with pytest.raises(S3LamboError) as exc_info:
            sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))

        assert exc_info.value.is_filesystem
        assert exc_info.value.path == str(dangling)
        assert store.keys() == {"a.txt"}

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_ignored_broken_symlink_still_fails(self, sync_engine, temp_dir):
        """Test that entries are stat'ed before the ignore check."""
        os.symlink(temp_dir / "does-not-exist", temp_dir / "dangling")

        with pytest.raises(S3LamboError):
            sync_engine.sync_directory(
                SyncRequest(path=temp_dir, bucket="bucket", ignore={"dangling"})
            )

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinked_file_keeps_entry_name(self, sync_engine, store, temp_dir):
        """Test that a symlinked file is typed by its own name, not its target."""
        make_tree(temp_dir, {"store/blob123": "<h1>lambo</h1>"})
        root = temp_dir / "site"
        root.mkdir()
        os.symlink(temp_dir / "store" / "blob123", root / "index.html")

        sync_engine.sync_directory(SyncRequest(path=root, bucket="bucket"))

        uploaded = store.objects[("bucket", "index.html")]
        assert uploaded["content_type"] == "text/html"
        assert uploaded["data"] == b"<h1>lambo</h1>"

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_unreadable_symlink_target_reports_entry(
        self, sync_engine, store, temp_dir
    ):
        """Test that the error names the entry found in the tree, not its target."""
        make_tree(temp_dir, {"store/target.dat": "secret", "site/a.txt": "a"})
        root = temp_dir / "site"
        (root / "sub").mkdir()
        os.symlink(temp_dir / "store" / "target.dat", root / "sub" / "locked.bin")
        real_open = builtins.open

        def guarded_open(file, *args, **kwargs):
            if os.path.realpath(file).endswith("target.dat"):
                raise PermissionError(13, "Permission denied", str(file))
            return real_open(file, *args, **kwargs)

        with patch("s3lambo.sync.operations.open", guarded_open, create=True):
            with pytest.raises(S3LamboError) as exc_info:
                sync_engine.sync_directory(SyncRequest(path=root, bucket="bucket"))

        error = exc_info.value
        assert error.kind is ErrorKind.FILESYSTEM
        assert error.path == str(root / "sub" / "locked.bin")
        assert store.keys() == {"a.txt"}

    def test_entry_vanishing_before_stat(self, sync_engine, store, temp_dir):
        """Test that an entry removed after listing fails its branch."""
        make_tree(temp_dir, {"a.txt": "a", "gone.txt": "g"})
        real_listdir = os.listdir

        def listdir_then_remove(path):
            names = real_listdir(path)
            if "gone.txt" in names:
                os.remove(os.path.join(path, "gone.txt"))
            return names

        with patch("s3lambo.sync.engine.os.listdir", side_effect=listdir_then_remove):
            with pytest.raises(S3LamboError) as exc_info:
                sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))

        assert exc_info.value.is_filesystem
        assert exc_info.value.path == str(temp_dir / "gone.txt")
        assert store.keys() == {"a.txt"}

    def test_listing_failure(self, sync_engine, temp_dir):
        """Test that an unreadable directory raises a FILESYSTEM error."""
        with patch(
            "s3lambo.sync.engine.os.listdir",
            side_effect=PermissionError(13, "Permission denied"),
        ):
            with pytest.raises(S3LamboError, match="unable to read directory"):
                sync_engine.sync_directory(SyncRequest(path=temp_dir, bucket="bucket"))
