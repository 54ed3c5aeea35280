"""Shared fixtures and fakes for the test suite."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest

from vddk_builder.builds.runner import BuildToolError, PushToolError, ToolResult
from vddk_builder.config import Settings

CONTAINERFILE = b"FROM scratch\nCOPY hello.txt /hello.txt\n"


def make_tar_gz(path: Path, entries: dict[str, bytes | None]) -> Path:
    """Write a .tar.gz with the given entries.

    A value of None creates a directory entry.
    """
    with tarfile.open(path, "w:gz") as tar:
        for name, content in entries.items():
            info = tarfile.TarInfo(name)
            if content is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(content)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(content))
    return path


def build_context_bytes() -> bytes:
    """Return a small valid build context as .tar.gz bytes."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in {
            "Containerfile.vddk": CONTAINERFILE,
            "hello.txt": b"hello\n",
        }.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


class FakeBuilder:
    """Builder that records calls instead of running podman."""

    def __init__(self, fail: bool = False, error: Exception | None = None) -> None:
        self.fail = fail
        self.error = error
        self.calls: list[tuple[Path, str]] = []
        self.seen_files: list[list[str]] = []

    def build(self, context_dir: Path, tag: str) -> ToolResult:
        self.calls.append((context_dir, tag))
        self.seen_files.append(
            sorted(p.relative_to(context_dir).as_posix() for p in context_dir.rglob("*"))
        )
        if self.error is not None:
            raise self.error
        if self.fail:
            raise BuildToolError(
                "build failed with exit code 1",
                exit_code=1,
                output="STEP 1/2: FROM scratch\nError: boom",
                code="build_failed",
            )
        return ToolResult(command=f"fake build {tag}", exit_code=0, output="")


class FakePusher:
    """Pusher that records calls instead of running skopeo."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str | None]] = []

    def push(self, tag: str, credential: str | None = None) -> ToolResult:
        self.calls.append((tag, credential))
        if self.fail:
            raise PushToolError(
                "push failed with exit code 1",
                exit_code=1,
                output="Error: unauthorized",
                code="push_failed",
            )
        return ToolResult(command=f"fake push {tag}", exit_code=0, output="")


class FakeReviewer:
    """Access reviewer allowing only known tokens."""

    def __init__(self, allowed_tokens: set[str], error: Exception | None = None) -> None:
        self.allowed_tokens = allowed_tokens
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    def check_access(self, token: str, verb: str, resource: str) -> bool:
        self.calls.append((token, verb, resource))
        if self.error is not None:
            raise self.error
        return token in self.allowed_tokens


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing all paths into tmp_path."""
    return Settings(
        image_name="vddk",
        image_registry="registry.local:5000",
        upload_dir=tmp_path / "uploads",
        work_dir=tmp_path / "work",
        require_auth=False,
    )


@pytest.fixture
def archive(tmp_path: Path) -> Path:
    """A valid build context archive inside the upload directory."""
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / "context.tar.gz"
    path.write_bytes(build_context_bytes())
    return path
