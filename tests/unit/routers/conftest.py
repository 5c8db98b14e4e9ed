"""Router test fixtures with a mocked Identity service."""

from __future__ import annotations

import os
import uuid
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from quash_service.app import create_app
from quash_service.config import clear_settings_cache
from quash_service.core.exceptions import ServiceError
from quash_service.core.lifespan import lifespan
from quash_service.core.state import get_app_state, reset_app_state
from tests.helpers import extract_kid, generate_keypair, make_jws_token

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

# ---------------------------------------------------------------------------
# Fixed user IDs
# ---------------------------------------------------------------------------
ALICE_USER_ID = "u-alice"
BOB_USER_ID = "u-bob"
CAROL_USER_ID = "u-carol"

DEADLINE = "2030-01-15T12:00:00Z"


# ---------------------------------------------------------------------------
# ID generators
# ---------------------------------------------------------------------------
def make_task_id() -> str:
    """Generate a well-formed task ID."""
    return f"t-{uuid.uuid4()}"


def make_offer_id() -> str:
    """Generate a well-formed offer ID."""
    return f"off-{uuid.uuid4()}"


def make_category_id() -> str:
    """Generate a well-formed category ID."""
    return f"cat-{uuid.uuid4()}"


def make_skill_id() -> str:
    """Generate a well-formed skill ID."""
    return f"sk-{uuid.uuid4()}"


def bearer(token: str) -> dict[str, str]:
    """Authorization header for a bearer token."""
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Token fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def alice_token() -> str:
    """Signed bearer token for Alice (usually the task owner)."""
    return make_jws_token(generate_keypair()[0], ALICE_USER_ID)


@pytest.fixture
def bob_token() -> str:
    """Signed bearer token for Bob (usually a bidder)."""
    return make_jws_token(generate_keypair()[0], BOB_USER_ID)


@pytest.fixture
def carol_token() -> str:
    """Signed bearer token for Carol (usually a second bidder)."""
    return make_jws_token(generate_keypair()[0], CAROL_USER_ID)


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with temp database and a mocked Identity service."""
    db_path = tmp_path / "test.db"
    log_dir = tmp_path / "logs"
    config_content = f"""\
service:
  name: "quash-board"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{log_dir}"
database:
  path: "{db_path}"
identity:
  base_url: "http://localhost:8001"
  verify_token_path: "/tokens/verify"
  timeout_seconds: 10
request:
  max_body_size: 1048576
limits:
  max_title_length: 200
  max_description_length: 10000
  max_message_length: 2000
  max_attachments: 20
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Mock Identity client. By default the token's kid is the verified user
        mock_identity = AsyncMock()
        mock_identity.close = AsyncMock()
        mock_identity.verify_token = AsyncMock(
            side_effect=lambda token: {"valid": True, "user_id": extract_kid(token)}
        )
        state.identity_client = mock_identity

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Mock override fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_identity_unavailable(_app: Any) -> None:
    """Configure the Identity mock to simulate service unavailability."""
    state = get_app_state()
    state.identity_client.verify_token = AsyncMock(
        side_effect=ConnectionError("Identity service unreachable")
    )


@pytest.fixture
def mock_identity_rejects(_app: Any) -> None:
    """Configure the Identity mock to reject every token."""
    state = get_app_state()
    state.identity_client.verify_token = AsyncMock(
        side_effect=ServiceError("UNAUTHORIZED", "Access token verification failed", 401, {})
    )


# ---------------------------------------------------------------------------
# Lifecycle helper functions
# ---------------------------------------------------------------------------
async def create_category(client: AsyncClient, token: str, *, title: str = "Cleaning") -> Any:
    """Create a category via POST /categories and return the response."""
    return await client.post("/categories", json={"title": title}, headers=bearer(token))


async def create_task(
    client: AsyncClient,
    token: str,
    category_id: str,
    **overrides: Any,
) -> Any:
    """Create a task via POST /tasks and return the response."""
    body: dict[str, Any] = {
        "title": "Fix leaking tap",
        "description": "Kitchen tap drips all night",
        "category_id": category_id,
        "range": {"min": 50, "max": 150},
        "reward": 100,
        "deadline": DEADLINE,
    }
    body.update(overrides)
    return await client.post("/tasks", json=body, headers=bearer(token))


async def create_offer(
    client: AsyncClient,
    token: str,
    task_id: str,
    *,
    amount: float = 90,
    message: str | None = "I can do it tomorrow",
) -> Any:
    """Submit an offer via POST /offers and return the response."""
    body: dict[str, Any] = {"task_id": task_id, "amount": amount, "deadline": DEADLINE}
    if message is not None:
        body["message"] = message
    return await client.post("/offers", json=body, headers=bearer(token))


async def offer_action(client: AsyncClient, token: str, offer_id: str, action: str) -> Any:
    """PUT /offers/{offer_id}/{action} for accept, reject or withdraw."""
    return await client.put(f"/offers/{offer_id}/{action}", headers=bearer(token))


async def setup_open_task(client: AsyncClient, owner_token: str) -> str:
    """Create a category and an open task on it. Returns the task_id."""
    category = await create_category(client, owner_token)
    assert category.status_code == 201
    task = await create_task(client, owner_token, category.json()["category_id"])
    assert task.status_code == 201
    return str(task.json()["task_id"])


async def setup_task_in_progress(
    client: AsyncClient,
    owner_token: str,
    quasher_token: str,
) -> tuple[str, str]:
    """Create a task and accept one offer on it.

    Returns (task_id, offer_id).
    """
    task_id = await setup_open_task(client, owner_token)
    offer = await create_offer(client, quasher_token, task_id)
    assert offer.status_code == 201
    offer_id = str(offer.json()["offer_id"])
    accepted = await offer_action(client, owner_token, offer_id, "accept")
    assert accepted.status_code == 200
    return task_id, offer_id
