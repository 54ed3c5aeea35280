"""Image existence endpoint.

- GET /check-image?image=<name> - Check whether an image exists in the registry
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status

from vddk_builder.registry import (
    ProbeTransportError,
    ProbeUnexpectedStatus,
    RegistryProbe,
)
from vddk_builder.types import AuthorizationDecision
from web.deps import authorize, get_probe

router = APIRouter()


@router.get("/check-image")
def check_image_endpoint(
    image: str | None = Query(None, description="Image name, optionally with :tag"),
    decision: AuthorizationDecision = Depends(authorize),
    probe: RegistryProbe = Depends(get_probe),
) -> dict[str, Any]:
    """Check whether an image exists in the registry.

    Args:
        image: Image name; the tag defaults to 'latest'.
        decision: Authorization decision for the caller.
        probe: Registry probe.

    Returns:
        Confirmation that the image exists.

    Raises:
        HTTPException: 400 without an image, 404 if absent, 500 if the
            registry could not answer.
    """
    if not image:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "malformed_request",
                "message": "Missing 'image' query parameter",
            },
        )

    try:
        exists = probe.image_exists(image, decision.credential)
    except (ProbeTransportError, ProbeUnexpectedStatus) as e:
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "code": e.code,
                "message": f"Error checking image: {e}",
            },
        ) from None

    if not exists:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={
                "code": "image_not_found",
                "message": f"Image {image} not found in the registry.",
            },
        )

    return {
        "image": image,
        "exists": True,
        "message": f"Image {image} exists in the registry.",
    }
