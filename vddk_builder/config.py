"""Configuration settings for vddk_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Variable names match the deployment manifests
(IMAGE_NAME, IMAGE_REGISTRY, ...), so no prefix is applied.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REGISTRY = "image-registry.openshift-image-registry.svc:5000"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables and an optional .env file.
    CLI flags can override some of these at runtime.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Image
    image_name: str = Field(
        default="vddk",
        min_length=1,
        description="Default image name when an upload does not override it",
    )
    image_registry: str = Field(
        default=DEFAULT_REGISTRY,
        description="Destination registry host (host[:port])",
    )
    containerfile: Path = Field(
        default=Path("Containerfile.vddk"),
        description="Build recipe file handed to the image builder",
    )

    # TLS for the HTTPS listener
    ca_public_key: Path = Field(
        default=Path("/etc/tls/server.crt"),
        description="Server certificate path",
    )
    private_key: Path = Field(
        default=Path("/etc/tls/server.key"),
        description="Server private key path",
    )
    server_port: int = Field(
        default=8443,
        ge=1,
        le=65535,
        description="Listen port",
    )

    # Paths
    upload_dir: Path = Field(
        default=Path("/tmp/uploads"),
        description="Directory receiving uploaded archives",
    )
    work_dir: Path = Field(
        default=Path("tmp"),
        description="Working directory holding the extracted build context",
    )

    # Authorization
    require_auth: bool = Field(
        default=False,
        description="Require a bearer token checked against the Kubernetes API",
    )
    api_server: str = Field(
        default="https://kubernetes.default.svc",
        description="Kubernetes API server used for access reviews",
    )
    api_verify_tls: bool = Field(
        default=False,
        description="Verify the Kubernetes API server certificate",
    )

    # Registry TLS
    dest_tls_verify: bool = Field(
        default=False,
        description="Verify the registry certificate when pushing",
    )
    registry_verify_tls: bool = Field(
        default=False,
        description="Verify the registry certificate when probing for images",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    build_timeout: int = Field(
        default=3600,
        ge=1,
        description="Timeout for the image build",
    )
    push_timeout: int = Field(
        default=1800,
        ge=1,
        description="Timeout for the image push",
    )
    probe_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for registry and access review requests",
    )

    @property
    def staging_dir(self) -> Path:
        """Directory the uploaded build context is extracted into."""
        return self.work_dir / "extracted"


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["DEFAULT_REGISTRY", "Settings", "get_settings", "print_settings_json"]
