"""Shared type definitions for vddk_builder.

This module contains dataclasses and enums shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path


class BuildStage(str, Enum):
    """Stage of the build pipeline."""

    STAGING = "staging"
    EXTRACTING = "extracting"
    BUILDING = "building"
    PUSHING = "pushing"
    CLEANING_UP = "cleaning_up"
    DONE = "done"


@dataclass(frozen=True)
class BuildRequest:
    """An admitted build.

    Attributes:
        archive_path: Uploaded archive; deleted when the pipeline ends.
        image_name: Optional override of the configured image name.
        credential: Bearer token reused as the registry push credential.
    """

    archive_path: Path
    image_name: str | None = None
    credential: str | None = None


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of an authorization check."""

    permitted: bool
    credential: str | None = None
    reason: str | None = None


@dataclass
class BuildOutcome:
    """Result of one pipeline run.

    Attributes:
        success: Whether the image was built and pushed.
        stage: DONE on success, otherwise the stage that failed.
        image_tag: Target tag, once computed.
        error_code: Stable code of the failure, if any.
        error_message: Failure description, if any.
        started_at: Pipeline start time.
        finished_at: Pipeline end time.
    """

    success: bool
    stage: BuildStage
    image_tag: str | None
    started_at: datetime
    finished_at: datetime
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "stage": self.stage.value,
            "image_tag": self.image_tag,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
        }


__all__ = [
    "AuthorizationDecision",
    "BuildOutcome",
    "BuildRequest",
    "BuildStage",
]
