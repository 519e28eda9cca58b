"""Root pytest configuration for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from opencowork.security.trust_store import TrustLevel, TrustStore

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """An existing folder to authorize."""
    folder = tmp_path / "workspace"
    folder.mkdir()
    return folder


@pytest.fixture
def trust_store(tmp_path: Path) -> TrustStore:
    """A file-backed trust store in a temp directory."""
    return TrustStore(tmp_path / "data" / "trust.yaml")


@pytest.fixture
def authorized(trust_store: TrustStore, workspace: Path) -> TrustStore:
    """Trust store with `workspace` authorized at Strict."""
    trust_store.add_folder(str(workspace), TrustLevel.STRICT)
    return trust_store
