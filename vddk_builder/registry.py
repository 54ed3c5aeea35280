"""Registry image existence checks.

Existence is tested with a HEAD request on the image manifest, so no
layer content is downloaded. Probing never touches the build slot.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TAG = "latest"

MANIFEST_ACCEPT = ", ".join(
    [
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
    ]
)


class ProbeTransportError(Exception):
    """Raised when the registry cannot be reached."""

    def __init__(self, message: str, code: str = "probe_transport_error") -> None:
        super().__init__(message)
        self.code = code


class ProbeUnexpectedStatus(Exception):
    """Raised when the registry answers with neither 200 nor 404."""

    def __init__(self, status_code: int, code: str = "probe_unexpected_status") -> None:
        super().__init__(f"unexpected HTTP status code: {status_code}")
        self.status_code = status_code
        self.code = code


def split_image_name(image_name: str) -> tuple[str, str]:
    """Split an image reference into repository and tag.

    The text after the last ':' is the tag unless it contains a '/', in
    which case the ':' belongs to a registry port and the tag is 'latest'.

    Examples:
        >>> split_image_name("vddk")
        ('vddk', 'latest')
        >>> split_image_name("vddk:v2")
        ('vddk', 'v2')
    """
    name, sep, tag = image_name.rpartition(":")
    if not sep or not name or not tag or "/" in tag:
        return image_name, DEFAULT_TAG
    return name, tag


def manifest_url(registry: str, image_name: str) -> str:
    """Build the manifest URL for an image reference."""
    name, tag = split_image_name(image_name)
    return f"https://{registry}/v2/{name}/manifests/{tag}"


def image_exists(
    image_name: str,
    registry: str,
    token: str | None = None,
    client: httpx.Client | None = None,
    timeout: float = 30.0,
    verify_tls: bool = False,
) -> bool:
    """Check whether an image exists in the registry.

    Args:
        image_name: Image reference, optionally with a ':tag'.
        registry: Registry host (host[:port]).
        token: Optional bearer token for the registry.
        client: HTTPX client to use; a short-lived one is created if omitted.
        timeout: Request timeout in seconds.
        verify_tls: Verify the registry certificate (new clients only).

    Returns:
        True if the manifest exists, False if the registry reports 404.

    Raises:
        ProbeTransportError: If the request cannot be completed.
        ProbeUnexpectedStatus: For any other status code.
    """
    url = manifest_url(registry, image_name)
    headers = {"Accept": MANIFEST_ACCEPT}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    logger.debug("Probing %s", url)

    try:
        if client is None:
            with httpx.Client(verify=verify_tls, timeout=timeout) as own_client:
                response = own_client.head(url, headers=headers)
        else:
            response = client.head(url, headers=headers, timeout=timeout)
    except httpx.TimeoutException as e:
        raise ProbeTransportError(f"Timeout probing {url}", code="timeout") from e
    except httpx.RequestError as e:
        raise ProbeTransportError(f"Network error probing {url}: {e}") from e
    except httpx.InvalidURL as e:
        raise ProbeTransportError(f"Invalid image reference: {e}", code="invalid_url") from e

    if response.status_code == httpx.codes.OK:
        return True
    if response.status_code == httpx.codes.NOT_FOUND:
        return False
    raise ProbeUnexpectedStatus(response.status_code)


class RegistryProbe:
    """Existence checks against one configured registry."""

    def __init__(
        self,
        registry: str,
        verify_tls: bool = False,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.registry = registry
        self.verify_tls = verify_tls
        self.timeout = timeout
        self._client = client

    def image_exists(self, image_name: str, token: str | None = None) -> bool:
        return image_exists(
            image_name,
            self.registry,
            token,
            client=self._client,
            timeout=self.timeout,
            verify_tls=self.verify_tls,
        )


__all__ = [
    "DEFAULT_TAG",
    "MANIFEST_ACCEPT",
    "ProbeTransportError",
    "ProbeUnexpectedStatus",
    "RegistryProbe",
    "image_exists",
    "manifest_url",
    "split_image_name",
]
