"""Shared pytest fixtures for the stackforge test suite.

Provides reusable fixtures for:
- Temporary output directories and generator configs
- Resolved project configurations
- A fixed clock, token providers and a wired Identity Bridge
"""

from __future__ import annotations

from pathlib import Path

import pytest

from stackforge.config import Config, IdentityConfig
from stackforge.identity import (
    HmacTokenProvider,
    IdentityBridge,
    InMemoryPrincipalStore,
    RevocationRegistry,
    ValidationCache,
)
from stackforge.resolver import ProjectConfiguration, resolve


# ---------------------------------------------------------------------------
# Paths & Config
# ---------------------------------------------------------------------------

@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Parent directory for generated projects (auto-cleanup)."""
    out = tmp_path / "out"
    out.mkdir()
    yield out


@pytest.fixture
def generator_config(output_dir: Path) -> Config:
    """Generator config writing ``demo-app`` under the temp output dir."""
    return Config(project_name="demo-app", output_dir=output_dir)


# ---------------------------------------------------------------------------
# Project configurations
# ---------------------------------------------------------------------------

@pytest.fixture
def default_project() -> ProjectConfiguration:
    """The configuration an empty selection resolves to."""
    return resolve({}, project_name="demo-app")


@pytest.fixture
def node_project() -> ProjectConfiguration:
    """Express + Mongo + React with builtin auth."""
    return resolve(
        {"backend": "express", "database": "mongodb", "orm": "mongoose"},
        project_name="node-app",
    )


@pytest.fixture
def frontend_only_project() -> ProjectConfiguration:
    """A static frontend: no backend, database or auth."""
    return resolve({"backend": "none"}, project_name="static-site")


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced clock used instead of ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hmac_provider() -> HmacTokenProvider:
    return HmacTokenProvider(issuer="builtin", secret="test-secret-key")


@pytest.fixture
def principal_store() -> InMemoryPrincipalStore:
    counter = iter(range(1, 10_000))
    return InMemoryPrincipalStore(id_factory=lambda: f"p{next(counter)}")


@pytest.fixture
def bridge(hmac_provider, principal_store, clock) -> IdentityBridge:
    """Bridge with one HMAC provider, a 60s cache and a fake clock."""
    return IdentityBridge(
        [hmac_provider],
        store=principal_store,
        revocations=RevocationRegistry(),
        cache=ValidationCache(ttl=60.0, timer=clock),
        config=IdentityConfig(cache_ttl=60.0),
        clock=clock,
    )
