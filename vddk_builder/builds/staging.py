"""Staging of uploaded build contexts.

This module handles:
- Writing an uploaded archive into the upload directory
- Streaming extraction of a gzip-compressed tar into the staging directory
- Rejecting entries that would escape the staging directory

Only directories and regular files are materialized; symlinks, hard links
and device entries are skipped.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import zlib
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755

# Chunk size for copying uploads and archive members (bytes)
COPY_CHUNK_SIZE = 64 * 1024


class ExtractionError(Exception):
    """Raised when archive extraction fails."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        super().__init__(message)
        self.code = code


class StagingIOError(Exception):
    """Raised when an upload or the staging area cannot be written."""

    def __init__(self, message: str, code: str = "staging_io_error") -> None:
        super().__init__(message)
        self.code = code


def _upload_suffix(filename: str | None) -> str:
    """Keep a recognizable archive suffix for the staged upload."""
    if not filename:
        return ".tar.gz"
    name = Path(filename).name
    for suffix in (".tar.gz", ".tgz"):
        if name.lower().endswith(suffix):
            return suffix
    return ".upload"


def stage_upload(stream: BinaryIO, upload_dir: Path, filename: str | None = None) -> Path:
    """Write an uploaded archive into the upload directory.

    The client-supplied filename only contributes its suffix; the stored
    name is generated, so it cannot point outside upload_dir.

    Args:
        stream: Readable binary stream with the upload content.
        upload_dir: Directory receiving uploads.
        filename: Client-supplied filename, if any.

    Returns:
        Path to the written file.

    Raises:
        StagingIOError: If the file cannot be written.
    """
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=upload_dir,
            prefix="upload-",
            suffix=_upload_suffix(filename),
            delete=False,
        ) as dst:
            dest_path = Path(dst.name)
            try:
                shutil.copyfileobj(stream, dst, COPY_CHUNK_SIZE)
                dst.flush()
            except OSError:
                dst.close()
                dest_path.unlink(missing_ok=True)
                raise
    except OSError as e:
        raise StagingIOError(f"Failed to save uploaded file: {e}") from e

    logger.info("Uploaded file saved to %s", dest_path)
    return dest_path


def _resolve_member_path(dest_root: Path, name: str) -> Path:
    """Resolve an archive entry name below dest_root.

    Raises:
        ExtractionError: If the entry is absolute or escapes dest_root.
    """
    member_path = Path(name)
    if member_path.is_absolute():
        raise ExtractionError(
            f"Refusing to extract {name}: absolute path",
            code="path_traversal",
        )

    target = (dest_root / member_path).resolve()
    try:
        target.relative_to(dest_root)
    except ValueError:
        raise ExtractionError(
            f"Refusing to extract {name}: path traversal detected",
            code="path_traversal",
        ) from None
    return target


def extract_archive(archive_path: Path, dest_dir: Path) -> int:
    """Extract a .tar.gz build context into dest_dir.

    The archive is read as a stream. A partial tree is left behind on
    failure; removing dest_dir is the caller's job.

    Args:
        archive_path: Path to the compressed archive.
        dest_dir: Destination directory (created if missing).

    Returns:
        Number of regular files written.

    Raises:
        ExtractionError: If the archive cannot be opened or read, contains
            an unsafe entry, or an entry cannot be written.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest_root = dest_dir.resolve()
    except OSError as e:
        raise ExtractionError(
            f"Failed to create extraction directory {dest_dir}: {e}",
            code="os_error",
        ) from e

    try:
        source = archive_path.open("rb")
    except OSError as e:
        raise ExtractionError(
            f"Failed to open archive {archive_path}: {e}",
            code="open_error",
        ) from e

    files_written = 0
    try:
        with source, tarfile.open(fileobj=source, mode="r|gz") as tar:
            for member in tar:
                target = _resolve_member_path(dest_root, member.name)

                if member.isdir():
                    target.mkdir(mode=DEFAULT_DIR_MODE, parents=True, exist_ok=True)
                elif member.isreg():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    content = tar.extractfile(member)
                    if content is None:
                        continue
                    with target.open("wb") as out:
                        shutil.copyfileobj(content, out, COPY_CHUNK_SIZE)
                    # Keep execute bits so scripts in the context stay runnable
                    target.chmod(DEFAULT_FILE_MODE | (member.mode & 0o111))
                    files_written += 1
                else:
                    logger.debug("Skipping unsupported entry %s", member.name)

    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path}: {e}",
            code="os_error",
        ) from e

    logger.info("Extracted %d files to %s", files_written, dest_dir)
    return files_written


__all__ = [
    "DEFAULT_DIR_MODE",
    "DEFAULT_FILE_MODE",
    "ExtractionError",
    "StagingIOError",
    "extract_archive",
    "stage_upload",
]
