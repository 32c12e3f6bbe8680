"""Shared pytest fixtures for the flowstate test suite.

Provides reusable fixtures for:
- Building module descriptors and small catalogs inline
- The built-in catalog and template directory
- Resolver, planner and composer instances
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from flowstate.modules.catalog import ModuleCatalog
from flowstate.modules.models import ModuleDescriptor


# ---------------------------------------------------------------------------
# Descriptor factories
# ---------------------------------------------------------------------------


def make_module(module_id: str, category: str = "other", **fields: Any) -> ModuleDescriptor:
    """Build a descriptor from camelCase or snake_case keyword fields."""
    return ModuleDescriptor.model_validate({"id": module_id, "category": category, **fields})


@pytest.fixture
def module_factory() -> Callable[..., ModuleDescriptor]:
    return make_module


@pytest.fixture
def vue_catalog_dicts() -> list[dict[str, Any]]:
    """A small Vue-centric catalog in the external descriptor format."""
    return [
        {
            "id": "vue-base",
            "category": "frontend-framework",
            "provides": ["frontend", "routing"],
            "incompatibleWith": ["react"],
            "fileManifest": ["package.json", "src/main.js", ".gitignore"],
        },
        {
            "id": "react",
            "category": "frontend-framework",
            "provides": ["frontend"],
            "incompatibleWith": ["vue-base"],
            "fileManifest": ["package.json", "src/main.jsx"],
        },
        {
            "id": "vuetify",
            "category": "ui-library",
            "provides": ["ui-components"],
            "requires": ["frontend"],
            "compatibleWith": ["vue-base"],
            "compatibleFrameworks": ["vue-base"],
            "fileManifest": ["package.json", "src/main.js", "src/plugins/vuetify.js"],
        },
        {
            "id": "tailwind",
            "category": "ui-library",
            "provides": ["styling"],
            "requires": ["frontend"],
            "incompatibleWith": ["vuetify"],
            "fileManifest": ["package.json", "tailwind.config.js"],
        },
        {
            "id": "supabase",
            "category": "backend-service",
            "provides": ["backend", "database", "auth"],
            "requires": ["frontend"],
            "fileManifest": ["package.json", ".env.example", ".gitignore"],
        },
    ]


@pytest.fixture
def vue_catalog(vue_catalog_dicts: list[dict[str, Any]]) -> ModuleCatalog:
    return ModuleCatalog.from_dicts(vue_catalog_dicts)


# ---------------------------------------------------------------------------
# Built-in data
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def builtin_catalog() -> ModuleCatalog:
    """The catalog shipped with flowstate (loaded once per session)."""
    return ModuleCatalog.load_builtin()


@pytest.fixture(scope="session")
def builtin_templates_dir() -> Path:
    import flowstate.scaffolder

    return Path(flowstate.scaffolder.__file__).parent / "templates"
