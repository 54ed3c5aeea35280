"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and wires
the service objects (build slot, orchestrator, gate, probe) into app state,
where the dependencies in web.deps find them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vddk_builder import __version__
from vddk_builder.auth import AccessReviewer, AuthorizationGate, KubernetesAccessReviewer
from vddk_builder.builds.runner import Builder, Pusher
from vddk_builder.builds.service import BuildOrchestrator
from vddk_builder.builds.slot import BuildSlot
from vddk_builder.config import Settings, get_settings
from vddk_builder.registry import RegistryProbe
from web.routers import health, images, status, uploads

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Creates the upload directory on startup.
    """
    settings: Settings = app.state.settings
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Upload directory: %s", settings.upload_dir)
    logger.info("Destination registry: %s", settings.image_registry)
    if not settings.require_auth:
        logger.warning("Authorization is disabled; all requests are admitted")
    yield


def create_app(
    settings: Settings | None = None,
    *,
    builder: Builder | None = None,
    pusher: Pusher | None = None,
    reviewer: AccessReviewer | None = None,
    probe: RegistryProbe | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Each application owns its own build slot, so independent instances
    never share admission state.

    Args:
        settings: Settings to use; loaded from the environment if omitted.
        builder: Image builder override (defaults to podman).
        pusher: Image pusher override (defaults to skopeo).
        reviewer: Access reviewer override (defaults to the Kubernetes API).
        probe: Registry probe override.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = get_settings()

    application = FastAPI(
        title="VDDK Builder API",
        description="Upload a build context to build and push an image, "
        "or check whether an image exists in the registry",
        version=__version__,
        lifespan=lifespan,
    )

    if reviewer is None and settings.require_auth:
        reviewer = KubernetesAccessReviewer(
            settings.api_server,
            verify_tls=settings.api_verify_tls,
            timeout=settings.probe_timeout,
        )

    slot = BuildSlot()
    application.state.settings = settings
    application.state.build_slot = slot
    application.state.orchestrator = BuildOrchestrator(
        settings, slot, builder=builder, pusher=pusher
    )
    application.state.gate = AuthorizationGate(settings.require_auth, reviewer)
    application.state.probe = probe or RegistryProbe(
        settings.image_registry,
        verify_tls=settings.registry_verify_tls,
        timeout=settings.probe_timeout,
    )

    # Include routers
    application.include_router(health.router, tags=["health"])
    application.include_router(images.router, tags=["images"])
    application.include_router(uploads.router, tags=["uploads"])
    application.include_router(status.router, tags=["status"])

    return application


# Create the default application instance
app = create_app()
