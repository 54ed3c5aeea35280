"""Build service module.

This module provides the build pipeline for one admitted upload:

    staging -> extracting -> building -> pushing -> cleaning_up -> done

The pipeline runs on a detached thread so the upload request can return
as soon as the archive is written. Results reach only the log and the
in-memory last outcome; nothing is retried.

The staging directory has a fixed name. That is only correct while the
BuildSlot admits a single build; per-request staging is needed if the
slot ever allows parallel builds.
"""

from __future__ import annotations

import logging
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from vddk_builder.builds.runner import (
    Builder,
    BuildToolError,
    PodmanBuilder,
    Pusher,
    PushToolError,
    SkopeoPusher,
)
from vddk_builder.builds.staging import ExtractionError, StagingIOError, extract_archive
from vddk_builder.types import BuildOutcome, BuildRequest, BuildStage

if TYPE_CHECKING:
    from vddk_builder.builds.slot import BuildSlot
    from vddk_builder.config import Settings

logger = logging.getLogger(__name__)


def compose_image_tag(registry: str, image_name: str | None, default_name: str) -> str:
    """Compose the target tag `{registry}/{name}`.

    An absent or empty override falls back to the configured default.
    """
    effective_name = image_name or default_name
    return f"{registry}/{effective_name}"


class BuildOrchestrator:
    """Runs admitted builds and always hands the slot back.

    Args:
        settings: Application settings.
        slot: Admission slot; the caller of dispatch() must hold it.
        builder: Image builder (defaults to podman).
        pusher: Image pusher (defaults to skopeo).
    """

    def __init__(
        self,
        settings: Settings,
        slot: BuildSlot,
        builder: Builder | None = None,
        pusher: Pusher | None = None,
    ) -> None:
        self.settings = settings
        self.slot = slot
        self.builder: Builder = builder or PodmanBuilder(
            settings.containerfile, timeout=settings.build_timeout
        )
        self.pusher: Pusher = pusher or SkopeoPusher(
            tls_verify=settings.dest_tls_verify, timeout=settings.push_timeout
        )
        self.last_outcome: BuildOutcome | None = None
        self._thread: threading.Thread | None = None

    @property
    def staging_dir(self) -> Path:
        return self.settings.staging_dir

    def dispatch(self, request: BuildRequest) -> threading.Thread:
        """Start the pipeline on a detached thread.

        Args:
            request: The admitted build.

        Returns:
            The started thread.
        """
        thread = threading.Thread(
            target=self.run,
            args=(request,),
            name="vddk-build",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            logger.error("Failed to start build thread, releasing build slot")
            self._cleanup(request)
            self.slot.release()
            raise
        self._thread = thread
        return thread

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the most recently dispatched build.

        Returns:
            True if no build is running afterwards.
        """
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def run(self, request: BuildRequest) -> BuildOutcome:
        """Run the pipeline for one admitted build, then release the slot.

        Failures are logged and recorded in the returned outcome; they are
        never raised to the caller.
        """
        started_at = datetime.now(timezone.utc)
        stage = BuildStage.STAGING
        image_tag: str | None = None
        error_code: str | None = None
        error_message: str | None = None

        try:
            try:
                self._enter(stage)
                try:
                    if self.staging_dir.exists():
                        logger.warning("Removing stale staging directory %s", self.staging_dir)
                        shutil.rmtree(self.staging_dir)
                    self.staging_dir.mkdir(parents=True)
                except OSError as e:
                    raise StagingIOError(
                        f"Failed to create staging directory: {e}"
                    ) from e

                stage = BuildStage.EXTRACTING
                self._enter(stage)
                extract_archive(request.archive_path, self.staging_dir)

                stage = BuildStage.BUILDING
                self._enter(stage)
                image_tag = compose_image_tag(
                    self.settings.image_registry,
                    request.image_name,
                    self.settings.image_name,
                )
                self.builder.build(self.staging_dir, image_tag)

                stage = BuildStage.PUSHING
                self._enter(stage)
                self.pusher.push(image_tag, request.credential)
                stage = BuildStage.DONE

                logger.info("Image build and push completed successfully: %s", image_tag)

            except (StagingIOError, ExtractionError) as e:
                error_code, error_message = e.code, str(e)
                logger.error("Failed to stage build context: %s", e)
            except BuildToolError as e:
                error_code, error_message = e.code, str(e)
                logger.error("Failed to build image: %s\n%s", e, e.output)
            except PushToolError as e:
                error_code, error_message = e.code, str(e)
                logger.error("Failed to push image: %s\n%s", e, e.output)
            except Exception as e:
                error_code, error_message = "internal_error", str(e)
                logger.exception("Unexpected error during %s stage", stage.value)
            finally:
                self._enter(BuildStage.CLEANING_UP)
                self._cleanup(request)

            outcome = BuildOutcome(
                success=error_code is None,
                stage=stage,
                image_tag=image_tag,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                error_code=error_code,
                error_message=error_message,
            )
            self.last_outcome = outcome
        finally:
            self._enter(BuildStage.DONE)
            self.slot.release()

        return outcome

    def _enter(self, stage: BuildStage) -> None:
        logger.debug("Build pipeline stage: %s", stage.value)

    def _cleanup(self, request: BuildRequest) -> None:
        """Remove the staging tree and the uploaded archive."""
        logger.info("Cleaning up...")
        try:
            shutil.rmtree(self.staging_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to remove staging directory: %s", e)

        try:
            request.archive_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to remove uploaded archive: %s", e)


__all__ = ["BuildOrchestrator", "compose_image_tag"]
