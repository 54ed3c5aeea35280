"""Runners for the external image build and push tools.

This module handles:
- The Builder and Pusher capability interfaces used by the pipeline
- Composing `podman build` and `skopeo copy` commands
- Executing them with combined stdout/stderr capture and timeouts

Alternative backends only need to satisfy the Builder/Pusher protocols.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

REDACTED = "***"


class ToolExecutionError(Exception):
    """Raised when an external tool fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        output: str = "",
        code: str = "tool_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output
        self.code = code


class BuildToolError(ToolExecutionError):
    """Raised when the image build fails."""


class PushToolError(ToolExecutionError):
    """Raised when the image push fails."""


@dataclass
class ToolResult:
    """Result of an external tool invocation.

    Attributes:
        command: The command that was executed (credentials redacted).
        exit_code: Process exit code.
        output: Combined stdout and stderr.
    """

    command: str
    exit_code: int
    output: str


class Builder(Protocol):
    """Builds an image from a staged context directory."""

    def build(self, context_dir: Path, tag: str) -> ToolResult: ...


class Pusher(Protocol):
    """Pushes a locally built image to its registry."""

    def push(self, tag: str, credential: str | None = None) -> ToolResult: ...


def redact_command(cmd: list[str]) -> str:
    """Render a command for logs with credential arguments masked."""
    masked: list[str] = []
    hide_next = False
    for arg in cmd:
        if hide_next:
            masked.append(REDACTED)
            hide_next = False
        elif arg in ("--dest-creds", "--creds"):
            masked.append(arg)
            hide_next = True
        elif arg.startswith(("--dest-creds=", "--creds=")):
            masked.append(arg.split("=", 1)[0] + "=" + REDACTED)
        else:
            masked.append(arg)
    return shlex.join(masked)


def run_tool(
    cmd: list[str],
    error_cls: type[ToolExecutionError],
    name: str,
    timeout: int | None = None,
) -> ToolResult:
    """Execute an external tool and capture its combined output.

    Args:
        cmd: Command as list of strings.
        error_cls: Error raised on failure.
        name: Short verb for messages and error codes ("build", "push").
        timeout: Timeout in seconds (None = no timeout).

    Returns:
        ToolResult on exit code 0.

    Raises:
        ToolExecutionError: Subclass given by error_cls on non-zero exit,
            timeout, or failure to start the process.
    """
    cmd_str = redact_command(cmd)
    logger.info("Executing %s: %s", name, cmd_str)

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        output = e.output or ""
        if isinstance(output, bytes):
            output = output.decode(errors="replace")
        raise error_cls(
            f"{name} timed out after {timeout} seconds",
            exit_code=-1,
            output=output,
            code=f"{name}_timeout",
        ) from e
    except OSError as e:
        raise error_cls(
            f"Failed to execute {name}: {e}",
            exit_code=None,
            code="execution_error",
        ) from e

    if result.returncode != 0:
        raise error_cls(
            f"{name} failed with exit code {result.returncode}",
            exit_code=result.returncode,
            output=result.stdout or "",
            code=f"{name}_failed",
        )

    return ToolResult(command=cmd_str, exit_code=result.returncode, output=result.stdout or "")


def resolve_containerfile(containerfile: Path, context_dir: Path) -> Path:
    """Locate the build recipe.

    An absolute path is used as is. A relative one is looked up in the
    staged context first, then taken relative to the working directory.
    """
    if containerfile.is_absolute():
        return containerfile
    in_context = context_dir / containerfile
    if in_context.is_file():
        return in_context
    return containerfile


def compose_build_command(
    tag: str,
    context_dir: Path,
    containerfile: Path,
    executable: str = "podman",
) -> list[str]:
    """Compose the image build command.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    return [
        executable,
        "build",
        "-f",
        str(resolve_containerfile(containerfile, context_dir)),
        "-t",
        tag,
        str(context_dir),
    ]


def compose_push_command(
    tag: str,
    credential: str | None = None,
    tls_verify: bool = False,
    executable: str = "skopeo",
) -> list[str]:
    """Compose the image push command.

    The credential is a bearer token passed as password with an empty
    username.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [executable, "copy", f"--dest-tls-verify={str(tls_verify).lower()}"]
    if credential:
        cmd.extend(["--dest-creds", f":{credential}"])
    cmd.append(f"containers-storage:{tag}")
    cmd.append(f"docker://{tag}")
    return cmd


class PodmanBuilder:
    """Builder backed by `podman build`."""

    def __init__(
        self,
        containerfile: Path,
        timeout: int | None = None,
        executable: str = "podman",
    ) -> None:
        self.containerfile = containerfile
        self.timeout = timeout
        self.executable = executable

    def build(self, context_dir: Path, tag: str) -> ToolResult:
        cmd = compose_build_command(tag, context_dir, self.containerfile, self.executable)
        return run_tool(cmd, BuildToolError, "build", timeout=self.timeout)


class SkopeoPusher:
    """Pusher backed by `skopeo copy` from local containers-storage."""

    def __init__(
        self,
        tls_verify: bool = False,
        timeout: int | None = None,
        executable: str = "skopeo",
    ) -> None:
        self.tls_verify = tls_verify
        self.timeout = timeout
        self.executable = executable

    def push(self, tag: str, credential: str | None = None) -> ToolResult:
        cmd = compose_push_command(tag, credential, self.tls_verify, self.executable)
        return run_tool(cmd, PushToolError, "push", timeout=self.timeout)


__all__ = [
    "BuildToolError",
    "Builder",
    "PodmanBuilder",
    "PushToolError",
    "Pusher",
    "SkopeoPusher",
    "ToolExecutionError",
    "ToolResult",
    "compose_build_command",
    "compose_push_command",
    "redact_command",
    "resolve_containerfile",
    "run_tool",
]
