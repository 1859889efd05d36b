"""stackforge configuration.

Centralised, typed configuration for the generator and the runtime Identity
Bridge. All settings use Pydantic v2 models so they can be validated at
construction time and serialised to/from JSON or environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class IdentityConfig(BaseModel):
    """Tuning knobs for the Identity Bridge."""

    cache_ttl: float = Field(
        default=60.0, ge=0, description="Seconds a successful validation may be reused"
    )
    leeway: float = Field(
        default=0.0, ge=0, le=300, description="Clock skew tolerated when checking expiry"
    )
    introspection_timeout: float = Field(
        default=5.0, gt=0, description="Per-request timeout for token introspection"
    )


class Config(BaseModel):
    """Global stackforge configuration.

    Instances are typically created once by the CLI entry point and then
    passed to ``Pipeline``.
    """

    project_name: str = Field(default="my-app")
    output_dir: Path = Field(default=Path("."))
    overwrite: bool = Field(default=False, description="Replace an existing project directory")
    dry_run: bool = Field(default=False, description="Plan only, write nothing")
    manifest_name: str = Field(default=".stackforge.json")
    identity: IdentityConfig = Field(default_factory=IdentityConfig)

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def project_path(self) -> Path:
        """Directory the generated project is materialised into."""
        return self.output_dir / self.project_name

    @property
    def manifest_path(self) -> Path:
        """Path of the resolved-configuration manifest inside the project."""
        return self.project_path / self.manifest_name

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            STACKFORGE_PROJECT_NAME, STACKFORGE_OUTPUT_DIR, STACKFORGE_OVERWRITE,
            STACKFORGE_DRY_RUN, STACKFORGE_CACHE_TTL, STACKFORGE_LEEWAY,
            STACKFORGE_INTROSPECTION_TIMEOUT.
        """
        identity_kwargs: dict[str, Any] = {}
        if os.environ.get("STACKFORGE_CACHE_TTL"):
            identity_kwargs["cache_ttl"] = float(os.environ["STACKFORGE_CACHE_TTL"])
        if os.environ.get("STACKFORGE_LEEWAY"):
            identity_kwargs["leeway"] = float(os.environ["STACKFORGE_LEEWAY"])
        if os.environ.get("STACKFORGE_INTROSPECTION_TIMEOUT"):
            identity_kwargs["introspection_timeout"] = float(
                os.environ["STACKFORGE_INTROSPECTION_TIMEOUT"]
            )

        return cls(
            project_name=os.environ.get("STACKFORGE_PROJECT_NAME", "my-app"),
            output_dir=Path(os.environ.get("STACKFORGE_OUTPUT_DIR", ".")),
            overwrite=_env_flag("STACKFORGE_OVERWRITE"),
            dry_run=_env_flag("STACKFORGE_DRY_RUN"),
            identity=IdentityConfig(**identity_kwargs),
        )


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")
