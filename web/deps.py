"""Service dependencies for FastAPI.

Route handlers receive the application's service objects through
dependency injection; nothing is held in module-level state.

Authorization runs as a dependency, so it completes before a handler
touches the build slot.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Header, HTTPException, Request
from fastapi import status as http_status

from vddk_builder.auth import AuthorizationGate
from vddk_builder.builds.service import BuildOrchestrator
from vddk_builder.builds.slot import BuildSlot
from vddk_builder.config import Settings
from vddk_builder.registry import RegistryProbe
from vddk_builder.types import AuthorizationDecision


def get_settings(request: Request) -> Settings:
    """Get settings from app state."""
    settings: Any = request.app.state.settings
    return settings  # type: ignore[no-any-return]


def get_gate(request: Request) -> AuthorizationGate:
    """Get the authorization gate from app state."""
    gate: Any = request.app.state.gate
    return gate  # type: ignore[no-any-return]


def get_build_slot(request: Request) -> BuildSlot:
    """Get the build slot from app state."""
    slot: Any = request.app.state.build_slot
    return slot  # type: ignore[no-any-return]


def get_orchestrator(request: Request) -> BuildOrchestrator:
    """Get the build orchestrator from app state."""
    orchestrator: Any = request.app.state.orchestrator
    return orchestrator  # type: ignore[no-any-return]


def get_probe(request: Request) -> RegistryProbe:
    """Get the registry probe from app state."""
    probe: Any = request.app.state.probe
    return probe  # type: ignore[no-any-return]


def authorize(
    authorization: str | None = Header(None),
    gate: AuthorizationGate = Depends(get_gate),
) -> AuthorizationDecision:
    """Admit the request or fail with 401.

    Returns:
        The permitted decision, carrying the caller's token if any.

    Raises:
        HTTPException: 401 if the request is not authorized.
    """
    decision = gate.authorize(authorization)
    if not decision.permitted:
        raise HTTPException(
            status_code=http_status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "authorization_denied",
                "message": decision.reason,
            },
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decision
