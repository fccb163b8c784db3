"""
Pytest configuration and fixtures for Rollcall tests.
"""

import sys
from pathlib import Path
from typing import Any

import pytest

# Add the repository root to path for imports
# This allows `from rollcall.pipeline import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from rollcall.app.dependencies import build_application, create_token_service  # noqa: E402
from rollcall.config.schemas import AppSettings  # noqa: E402
from rollcall.pipeline import DispatchRequest  # noqa: E402
from rollcall.storage import InMemoryDocumentStore  # noqa: E402

LONG_SECRET = "test-long-token-secret-0123456789abcdef"
SHORT_SECRET = "test-short-token-secret-0123456789abcdef"


def make_request(
    module_name: str,
    method_name: str,
    verb: str = "post",
    body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    query: dict[str, Any] | None = None,
    token: str | None = None,
) -> DispatchRequest:
    """Build a DispatchRequest, optionally with a bearer token."""
    headers = dict(headers or {})
    if token:
        headers["authorization"] = f"Bearer {token}"
    return DispatchRequest(
        verb=verb,
        module_name=module_name,
        method_name=method_name,
        body=body or {},
        query=query or {},
        headers=headers,
        client_host="127.0.0.1",
    )


@pytest.fixture
def settings():
    """Development settings with fixed test secrets."""
    return AppSettings(
        environment="development",
        long_token_secret=LONG_SECRET,
        short_token_secret=SHORT_SECRET,
    )


@pytest.fixture
def tokens(settings):
    return create_token_service(settings)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
async def application(settings, store):
    """Fully wired application over the in-memory store."""
    app = await build_application(settings, store=store)
    yield app
    await app.store.close()


@pytest.fixture
def superadmin_token(tokens):
    return tokens.issue_long_token(user_id="root", email="root@example.com", role="superadmin")
