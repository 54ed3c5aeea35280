"""Build status endpoint.

- GET /status - Whether a build is running and how the last one ended
"""

from typing import Any

from fastapi import APIRouter, Depends

from vddk_builder.builds.service import BuildOrchestrator
from vddk_builder.builds.slot import BuildSlot
from vddk_builder.types import AuthorizationDecision
from web.deps import authorize, get_build_slot, get_orchestrator

router = APIRouter()


@router.get("/status")
def status_endpoint(
    decision: AuthorizationDecision = Depends(authorize),
    slot: BuildSlot = Depends(get_build_slot),
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Report build slot state and the last build outcome.

    Gated like the other endpoints, so unauthorized callers cannot learn
    whether the server is busy.
    """
    outcome = orchestrator.last_outcome
    return {
        "busy": slot.busy,
        "last_build": outcome.to_dict() if outcome else None,
    }
