"""Async HTTP client for the Identity service."""

from __future__ import annotations

from typing import Any

import httpx

from quash_service.core.exceptions import ServiceError
from quash_service.logging import get_logger


class IdentityClient:
    """
    Client for Identity service token verification.

    Credential issuance and signature checks live in the Identity service;
    this service only forwards the caller's bearer token via
    POST /tokens/verify and trusts the user_id it gets back.
    """

    def __init__(
        self,
        base_url: str,
        verify_token_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._verify_token_path = verify_token_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def verify_token(self, token: str) -> dict[str, Any]:
        """
        Verify a bearer token via the Identity service.

        Args:
            token: JWS compact serialization string (header.payload.signature)

        Returns:
            dict with keys: valid (bool), user_id (str)

        Raises:
            ServiceError: UNAUTHORIZED (401) if the Identity service says valid=false
            ServiceError: IDENTITY_SERVICE_UNAVAILABLE (502) on connection/timeout/unexpected errors
        """
        logger = get_logger(__name__)

        try:
            response = await self._client.post(
                self._verify_token_path,
                json={"token": token},
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Identity service connection failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Cannot connect to Identity service",
                status_code=502,
                details={},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Identity service HTTP error",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Identity service request failed",
                status_code=502,
                details={},
            ) from exc

        if response.status_code != 200:
            logger.warning(
                "Identity service unexpected status",
                extra={
                    "status_code": response.status_code,
                    "base_url": self._base_url,
                },
            )
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Identity service returned unexpected status",
                status_code=502,
                details={},
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Identity service returned malformed JSON",
                status_code=502,
                details={},
            ) from exc

        if not isinstance(result, dict) or not result.get("valid", False):
            raise ServiceError(
                error="UNAUTHORIZED",
                message="Access token verification failed",
                status_code=401,
                details={},
            )

        return result

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
