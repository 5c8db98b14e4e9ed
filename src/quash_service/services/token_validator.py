"""Caller identity resolution for authenticated requests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quash_service.core.exceptions import ServiceError

if TYPE_CHECKING:
    from quash_service.clients.identity_client import IdentityClient


class TokenValidator:
    """Turns a bearer token into the caller's user id via the Identity service."""

    def __init__(self, identity_client: IdentityClient) -> None:
        self._identity_client = identity_client

    async def resolve_caller(self, token: str) -> str:
        """
        Verify a token via the Identity service and return the caller's user id.

        Error precedence handled here:
        - UNAUTHORIZED: token is not a three-part JWS
        - IDENTITY_SERVICE_UNAVAILABLE: Identity service unreachable
        - UNAUTHORIZED: token rejected, or no user id in the verification result

        Raises:
            ServiceError: UNAUTHORIZED or IDENTITY_SERVICE_UNAVAILABLE
        """
        if not token:
            raise ServiceError("UNAUTHORIZED", "Token must be a non-empty string", 401, {})

        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            raise ServiceError(
                "UNAUTHORIZED",
                "Token must be in JWS compact serialization format (header.payload.signature)",
                401,
                {},
            )

        result: Any
        try:
            result = await self._identity_client.verify_token(token)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Cannot connect to Identity service",
                502,
                {},
            ) from exc

        user_id = result.get("user_id") if isinstance(result, dict) else None
        if not isinstance(user_id, str) or len(user_id) < 1:
            raise ServiceError("UNAUTHORIZED", "Token subject is missing", 401, {})
        return user_id
