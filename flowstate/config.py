"""flowstate configuration.

Typed settings for resolution, composition and project output.  All
settings are Pydantic v2 models so they are validated at construction time
and can be serialised to/from JSON or read from environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from flowstate.modules.models import ResolutionOptions


_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip().lower() in _TRUTHY


class ResolutionDefaults(BaseModel):
    """Default knobs for dependency resolution."""

    auto_resolve: bool = Field(default=True, description="Add providers for missing capabilities")
    allow_conflicts: bool = Field(
        default=False, description="Report blocking issues as warnings and continue"
    )

    def as_options(self) -> ResolutionOptions:
        return ResolutionOptions(auto_resolve=self.auto_resolve, allow_conflicts=self.allow_conflicts)


class CompositionConfig(BaseModel):
    """Tuning knobs for template composition."""

    strict_merge: bool = Field(
        default=True,
        description="Fail when several modules share a path that has no merge rule",
    )
    max_parallel_fetch: int = Field(
        default=8, ge=1, description="Maximum concurrent template fetches"
    )


class Config(BaseModel):
    """Global flowstate configuration.

    Instances are typically created once by the CLI entry point and then
    passed to :class:`~flowstate.scaffolder.ProjectGenerator`.
    """

    catalog_path: Optional[Path] = Field(
        default=None, description="Module catalog YAML; None uses the built-in catalog"
    )
    templates_dir: Optional[Path] = Field(
        default=None, description="Module template root; None uses the built-in templates"
    )
    output_dir: Path = Field(default=Path("."))
    author_name: str = Field(default="")
    author_email: str = Field(default="")
    resolution: ResolutionDefaults = Field(default_factory=ResolutionDefaults)
    composition: CompositionConfig = Field(default_factory=CompositionConfig)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            FLOWSTATE_CATALOG, FLOWSTATE_TEMPLATES, FLOWSTATE_OUTPUT_DIR,
            FLOWSTATE_AUTHOR_NAME, FLOWSTATE_AUTHOR_EMAIL,
            FLOWSTATE_AUTO_RESOLVE, FLOWSTATE_ALLOW_CONFLICTS,
            FLOWSTATE_STRICT_MERGE, FLOWSTATE_MAX_PARALLEL_FETCH.

        Raises:
            ValidationError: If a value does not fit its field, e.g. a
                non-numeric FLOWSTATE_MAX_PARALLEL_FETCH.
        """
        resolution_kwargs: dict[str, Any] = {}
        for env_name, field in (
            ("FLOWSTATE_AUTO_RESOLVE", "auto_resolve"),
            ("FLOWSTATE_ALLOW_CONFLICTS", "allow_conflicts"),
        ):
            flag = _env_flag(env_name)
            if flag is not None:
                resolution_kwargs[field] = flag

        composition_kwargs: dict[str, Any] = {}
        strict = _env_flag("FLOWSTATE_STRICT_MERGE")
        if strict is not None:
            composition_kwargs["strict_merge"] = strict
        max_parallel = os.environ.get("FLOWSTATE_MAX_PARALLEL_FETCH", "").strip()
        if max_parallel:
            # Validated (and coerced) by CompositionConfig.
            composition_kwargs["max_parallel_fetch"] = max_parallel

        catalog = os.environ.get("FLOWSTATE_CATALOG")
        templates = os.environ.get("FLOWSTATE_TEMPLATES")
        return cls(
            catalog_path=Path(catalog) if catalog else None,
            templates_dir=Path(templates) if templates else None,
            output_dir=Path(os.environ.get("FLOWSTATE_OUTPUT_DIR", ".")),
            author_name=os.environ.get("FLOWSTATE_AUTHOR_NAME", ""),
            author_email=os.environ.get("FLOWSTATE_AUTHOR_EMAIL", ""),
            resolution=ResolutionDefaults(**resolution_kwargs),
            composition=CompositionConfig(**composition_kwargs),
        )
