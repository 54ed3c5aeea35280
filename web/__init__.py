"""FastAPI web application for VDDK Builder.

This module provides the HTTPS API: image uploads that trigger a build
and image existence checks.

All business logic is delegated to core modules in vddk_builder/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
