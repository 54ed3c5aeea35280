"""Tests for builds/staging.py module.

Tests upload staging and safe archive extraction.
"""

import io
import tarfile
from pathlib import Path

import pytest

from tests.conftest import make_tar_gz
from vddk_builder.builds.staging import (
    ExtractionError,
    StagingIOError,
    extract_archive,
    stage_upload,
)


class TestExtractArchive:
    """Tests for extract_archive function."""

    def test_extracts_files_and_directories(self, tmp_path):
        """Should materialize directories and regular files."""
        archive = make_tar_gz(
            tmp_path / "ctx.tar.gz",
            {
                "Containerfile.vddk": b"FROM scratch\n",
                "lib": None,
                "lib/libvixDiskLib.so": b"\x7fELF",
            },
        )
        dest = tmp_path / "out"

        count = extract_archive(archive, dest)

        assert count == 2
        assert (dest / "Containerfile.vddk").read_bytes() == b"FROM scratch\n"
        assert (dest / "lib").is_dir()
        assert (dest / "lib" / "libvixDiskLib.so").read_bytes() == b"\x7fELF"

    def test_creates_missing_parent_directories(self, tmp_path):
        """Files without a preceding directory entry should still extract."""
        archive = make_tar_gz(tmp_path / "ctx.tar.gz", {"a/b/c.txt": b"deep"})
        dest = tmp_path / "out"

        extract_archive(archive, dest)

        assert (dest / "a" / "b" / "c.txt").read_bytes() == b"deep"

    def test_keeps_execute_bit(self, tmp_path):
        """Executable entries should stay executable."""
        archive_path = tmp_path / "ctx.tar.gz"
        with tarfile.open(archive_path, "w:gz") as tar:
            info = tarfile.TarInfo("run.sh")
            content = b"#!/bin/sh\n"
            info.size = len(content)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(content))
        dest = tmp_path / "out"

        extract_archive(archive_path, dest)

        assert (dest / "run.sh").stat().st_mode & 0o100

    def test_skips_symlinks(self, tmp_path):
        """Symlink entries should be skipped silently."""
        archive_path = tmp_path / "ctx.tar.gz"
        with tarfile.open(archive_path, "w:gz") as tar:
            link = tarfile.TarInfo("passwd")
            link.type = tarfile.SYMTYPE
            link.linkname = "/etc/passwd"
            tar.addfile(link)
            info = tarfile.TarInfo("real.txt")
            info.size = 2
            tar.addfile(info, io.BytesIO(b"ok"))
        dest = tmp_path / "out"

        count = extract_archive(archive_path, dest)

        assert count == 1
        assert not (dest / "passwd").exists()
        assert not (dest / "passwd").is_symlink()
        assert (dest / "real.txt").exists()

    def test_rejects_parent_traversal(self, tmp_path):
        """Entries escaping the destination should be rejected."""
        archive = make_tar_gz(tmp_path / "evil.tar.gz", {"../escape.txt": b"pwned"})
        dest = tmp_path / "out"

        with pytest.raises(ExtractionError) as exc_info:
            extract_archive(archive, dest)

        assert exc_info.value.code == "path_traversal"
        assert not (tmp_path / "escape.txt").exists()

    def test_rejects_nested_traversal(self, tmp_path):
        """Traversal hidden behind a normal prefix should be rejected."""
        archive = make_tar_gz(
            tmp_path / "evil.tar.gz", {"lib/../../escape.txt": b"pwned"}
        )

        with pytest.raises(ExtractionError) as exc_info:
            extract_archive(archive, tmp_path / "out")

        assert exc_info.value.code == "path_traversal"
        assert not (tmp_path / "escape.txt").exists()

    def test_rejects_absolute_path(self, tmp_path):
        """Absolute entry names should be rejected."""
        archive = make_tar_gz(tmp_path / "evil.tar.gz", {"/tmp/escape.txt": b"x"})

        with pytest.raises(ExtractionError) as exc_info:
            extract_archive(archive, tmp_path / "out")

        assert exc_info.value.code == "path_traversal"

    def test_corrupted_archive(self, tmp_path):
        """Non-gzip input should raise ExtractionError."""
        archive = tmp_path / "bad.tar.gz"
        archive.write_bytes(b"this is not a gzip stream at all")

        with pytest.raises(ExtractionError) as exc_info:
            extract_archive(archive, tmp_path / "out")

        assert exc_info.value.code == "tar_error"

    def test_truncated_archive(self, tmp_path):
        """A truncated gzip stream should raise ExtractionError."""
        good = make_tar_gz(tmp_path / "good.tar.gz", {"big.bin": b"x" * 100_000})
        truncated = tmp_path / "truncated.tar.gz"
        truncated.write_bytes(good.read_bytes()[:50])

        with pytest.raises(ExtractionError):
            extract_archive(truncated, tmp_path / "out")

    def test_missing_archive(self, tmp_path):
        """A missing source file should raise ExtractionError."""
        with pytest.raises(ExtractionError) as exc_info:
            extract_archive(tmp_path / "missing.tar.gz", tmp_path / "out")

        assert exc_info.value.code == "open_error"


class TestStageUpload:
    """Tests for stage_upload function."""

    def test_writes_upload(self, tmp_path):
        """Should write the stream content into the upload directory."""
        upload_dir = tmp_path / "uploads"

        path = stage_upload(io.BytesIO(b"payload"), upload_dir, "ctx.tar.gz")

        assert path.parent == upload_dir
        assert path.read_bytes() == b"payload"
        assert path.name.endswith(".tar.gz")

    def test_ignores_client_directories(self, tmp_path):
        """A client filename with directories should not escape upload_dir."""
        upload_dir = tmp_path / "uploads"

        path = stage_upload(io.BytesIO(b"x"), upload_dir, "../../etc/ctx.tgz")

        assert path.parent == upload_dir
        assert path.name.endswith(".tgz")

    def test_unique_names(self, tmp_path):
        """Two uploads with the same filename should not collide."""
        upload_dir = tmp_path / "uploads"

        first = stage_upload(io.BytesIO(b"1"), upload_dir, "ctx.tar.gz")
        second = stage_upload(io.BytesIO(b"2"), upload_dir, "ctx.tar.gz")

        assert first != second
        assert first.read_bytes() == b"1"

    def test_unwritable_directory(self, tmp_path):
        """Failure to create the upload directory should raise StagingIOError."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StagingIOError) as exc_info:
            stage_upload(io.BytesIO(b"x"), blocker / "uploads", "ctx.tar.gz")

        assert exc_info.value.code == "staging_io_error"

    def test_failed_copy_leaves_no_file(self, tmp_path):
        """A stream error mid-copy should not leave a partial upload."""

        class BrokenStream(io.RawIOBase):
            def readable(self) -> bool:
                return True

            def readinto(self, buffer) -> int:
                raise OSError("connection reset")

        upload_dir = tmp_path / "uploads"

        with pytest.raises(StagingIOError):
            stage_upload(BrokenStream(), upload_dir, "ctx.tar.gz")

        assert list(Path(upload_dir).iterdir()) == []
