"""Build context upload endpoint.

- POST /upload - Upload a .tar.gz build context and start a build

The response is sent once the upload is written and the build has been
dispatched; the build's own result is only logged (see GET /status).
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi import status as http_status

from vddk_builder.builds.service import BuildOrchestrator, compose_image_tag
from vddk_builder.builds.slot import BuildSlot, SlotBusyError
from vddk_builder.builds.staging import StagingIOError, stage_upload
from vddk_builder.config import Settings
from vddk_builder.types import AuthorizationDecision, BuildRequest
from web.deps import authorize, get_build_slot, get_orchestrator, get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload")
def upload_endpoint(
    file: UploadFile | None = File(None, description="Build context (.tar.gz)"),
    image: str | None = Query(None, description="Override the default image name"),
    decision: AuthorizationDecision = Depends(authorize),
    slot: BuildSlot = Depends(get_build_slot),
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Accept a build context and start building it.

    Args:
        file: Uploaded archive.
        image: Optional image name override.
        decision: Authorization decision for the caller.
        slot: Build slot.
        orchestrator: Build orchestrator.
        settings: Application settings.

    Returns:
        Where the upload was stored and which image will be built.

    Raises:
        HTTPException: 503 if a build is running, 400 without a file,
            500 if the upload cannot be written.
    """
    try:
        slot.acquire()
    except SlotBusyError as e:
        raise HTTPException(
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": e.code, "message": str(e)},
        ) from None

    # From here on the slot is held; every early exit must release it.
    if file is None:
        slot.release()
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "malformed_request",
                "message": "Failed to parse file: missing 'file' form field",
            },
        )

    try:
        archive_path = stage_upload(file.file, settings.upload_dir, file.filename)
    except StagingIOError as e:
        slot.release()
        logger.error("%s", e)
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": e.code, "message": "Failed to save file"},
        ) from None

    image_name = image or settings.image_name
    orchestrator.dispatch(
        BuildRequest(
            archive_path=archive_path,
            image_name=image_name,
            credential=decision.credential,
        )
    )

    return {
        "message": f"File uploaded successfully: {archive_path}",
        "path": str(archive_path),
        "image": compose_image_tag(settings.image_registry, image_name, settings.image_name),
    }
