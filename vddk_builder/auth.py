"""Request authorization.

A caller is admitted when its bearer token may list namespaces in the
cluster, checked with a SelfSubjectAccessReview made with the caller's own
token. The same token is then reused as the registry credential, on the
assumption that whoever may list namespaces may also push images.

When enforcement is off every request is admitted without a credential.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from vddk_builder.types import AuthorizationDecision

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

ACCESS_REVIEW_PATH = "/apis/authorization.k8s.io/v1/selfsubjectaccessreviews"

# Permission standing in for "is a cluster operator"
REQUIRED_VERB = "list"
REQUIRED_RESOURCE = "namespaces"

MISSING_TOKEN_REASON = "Missing bearer token"
INSUFFICIENT_PERMISSIONS_REASON = "Insufficient permissions to list namespaces"


class AuthorizationDenied(Exception):
    """Raised when a request is not authorized."""

    def __init__(self, reason: str, code: str = "authorization_denied") -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = code


class AccessReviewError(Exception):
    """Raised when the access review cannot be performed."""

    def __init__(self, message: str, code: str = "access_review_error") -> None:
        super().__init__(message)
        self.code = code


class AccessReviewer(Protocol):
    """Answers whether a token's identity may perform an action."""

    def check_access(self, token: str, verb: str, resource: str) -> bool: ...


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token of a `Bearer <token>` header value.

    The scheme prefix is case-sensitive. Returns None for a missing header,
    another scheme or an empty token.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX) :]
    return token or None


def build_access_review(verb: str, resource: str) -> dict[str, Any]:
    """Build a SelfSubjectAccessReview body."""
    return {
        "apiVersion": "authorization.k8s.io/v1",
        "kind": "SelfSubjectAccessReview",
        "spec": {
            "resourceAttributes": {
                "verb": verb,
                "resource": resource,
            }
        },
    }


class KubernetesAccessReviewer:
    """Access reviewer posting SelfSubjectAccessReviews to the API server.

    Each check uses a client scoped to the caller's token, so the review
    answers for the caller's identity rather than the service's.
    """

    def __init__(
        self,
        api_server: str,
        verify_tls: bool = False,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_server = api_server.rstrip("/")
        self.verify_tls = verify_tls
        self.timeout = timeout
        self._transport = transport

    def _client_for(self, token: str) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_server,
            headers={"Authorization": f"{BEARER_PREFIX}{token}"},
            verify=self.verify_tls,
            timeout=self.timeout,
            transport=self._transport,
        )

    def check_access(self, token: str, verb: str, resource: str) -> bool:
        """Ask whether the token's identity may perform verb on resource.

        Raises:
            AccessReviewError: If the review request fails or is rejected.
        """
        body = build_access_review(verb, resource)
        try:
            with self._client_for(token) as client:
                response = client.post(ACCESS_REVIEW_PATH, json=body)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            raise AccessReviewError(
                f"Access review rejected: {e.response.status_code}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise AccessReviewError(
                f"Timeout contacting {self.api_server}",
                code="timeout",
            ) from e
        except httpx.RequestError as e:
            raise AccessReviewError(
                f"Network error contacting {self.api_server}: {e}",
                code="network_error",
            ) from e
        except ValueError as e:
            raise AccessReviewError(
                f"Invalid access review response: {e}",
                code="invalid_response",
            ) from e

        if not isinstance(result, dict):
            raise AccessReviewError(
                "Invalid access review response: expected a JSON object",
                code="invalid_response",
            )
        status = result.get("status") or {}
        if not isinstance(status, dict):
            raise AccessReviewError(
                "Invalid access review response: status is not an object",
                code="invalid_response",
            )
        return status.get("allowed") is True


class AuthorizationGate:
    """Turns an Authorization header into an admission decision.

    Args:
        require_auth: Enforce bearer-token authorization.
        reviewer: Delegated permission check; required when enforcing.
    """

    def __init__(self, require_auth: bool, reviewer: AccessReviewer | None = None) -> None:
        if require_auth and reviewer is None:
            raise ValueError("an access reviewer is required when authorization is enforced")
        self.require_auth = require_auth
        self.reviewer = reviewer

    def authorize(self, authorization: str | None) -> AuthorizationDecision:
        """Decide whether a request carrying this header may proceed.

        Args:
            authorization: Raw Authorization header value, if any.

        Returns:
            The decision; a permitted decision carries the token.
        """
        if not self.require_auth:
            return AuthorizationDecision(permitted=True)

        token = extract_bearer_token(authorization)
        if token is None:
            return AuthorizationDecision(permitted=False, reason=MISSING_TOKEN_REASON)

        if self.reviewer is None:
            raise RuntimeError("authorization is enforced but no access reviewer is set")
        try:
            allowed = self.reviewer.check_access(token, REQUIRED_VERB, REQUIRED_RESOURCE)
        except AccessReviewError as e:
            logger.warning("Access review failed: %s", e)
            return AuthorizationDecision(
                permitted=False, reason=INSUFFICIENT_PERMISSIONS_REASON
            )

        if not allowed:
            logger.info("Access review denied request")
            return AuthorizationDecision(
                permitted=False, reason=INSUFFICIENT_PERMISSIONS_REASON
            )

        return AuthorizationDecision(permitted=True, credential=token)

    def require(self, authorization: str | None) -> AuthorizationDecision:
        """Like authorize(), but raise when denied.

        Raises:
            AuthorizationDenied: If the request is not permitted.
        """
        decision = self.authorize(authorization)
        if not decision.permitted:
            raise AuthorizationDenied(decision.reason or MISSING_TOKEN_REASON)
        return decision


__all__ = [
    "AccessReviewError",
    "AccessReviewer",
    "AuthorizationDenied",
    "AuthorizationGate",
    "KubernetesAccessReviewer",
    "build_access_review",
    "extract_bearer_token",
]
