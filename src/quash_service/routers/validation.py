"""Shared request validation helpers for the quash board routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from quash_service.core.exceptions import ServiceError
from quash_service.core.state import get_app_state

if TYPE_CHECKING:
    from fastapi import Request


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure. An empty body reads as {}."""
    if raw_body == b"":
        return {}

    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


def extract_bearer_token(authorization: str | None) -> str:
    """Extract the JWS token from an Authorization header."""
    if authorization is None:
        raise ServiceError(
            "UNAUTHORIZED",
            "Missing Authorization header",
            401,
            {},
        )

    if not authorization.startswith("Bearer "):
        raise ServiceError(
            "UNAUTHORIZED",
            "Authorization header must use Bearer scheme",
            401,
            {},
        )

    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise ServiceError(
            "UNAUTHORIZED",
            "Bearer token must not be empty",
            401,
            {},
        )

    return token


async def authenticate(request: Request) -> str:
    """Resolve the caller's user id from the request's bearer token."""
    token = extract_bearer_token(request.headers.get("authorization"))

    state = get_app_state()
    if state.token_validator is None:
        msg = "TokenValidator not initialized"
        raise RuntimeError(msg)

    return await state.token_validator.resolve_caller(token)
