"""Module catalog: the immutable lookup table of stack module descriptors.

A catalog is built once per process (usually from the bundled
``catalog.yaml``) and passed explicitly to the resolver and generator.  It
never changes after construction, so it can be shared by concurrent
resolutions.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import ModuleCategory, ModuleDescriptor


_BUILTIN_CATALOG = Path(__file__).parent / "catalog.yaml"


class CatalogError(ValueError):
    """Raised when a catalog definition is invalid."""


class Preset(BaseModel):
    """A named module selection shipped with the catalog."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    description: str = Field(default="")
    modules: tuple[str, ...] = Field(default=())


class ModuleCatalog:
    """Read-only registry of module descriptors, in declaration order.

    Declaration order matters: it is the last tie-breaker when the resolver
    has to choose between several providers of a missing capability.
    """

    def __init__(
        self,
        modules: Iterable[ModuleDescriptor],
        presets: Iterable[Preset] = (),
    ) -> None:
        index: dict[str, ModuleDescriptor] = {}
        for module in modules:
            if module.id in index:
                raise CatalogError(f"Duplicate module id: {module.id}")
            index[module.id] = module
        self._modules = index

        by_category: dict[ModuleCategory, list[ModuleDescriptor]] = {}
        for module in index.values():
            by_category.setdefault(module.category, []).append(module)
        self._by_category = {cat: tuple(mods) for cat, mods in by_category.items()}

        preset_index: dict[str, Preset] = {}
        for preset in presets:
            if preset.id in preset_index:
                raise CatalogError(f"Duplicate preset id: {preset.id}")
            unknown = [mid for mid in preset.modules if mid not in index]
            if unknown:
                raise CatalogError(
                    f"Preset '{preset.id}' references unknown modules: {', '.join(unknown)}"
                )
            preset_index[preset.id] = preset
        self._presets = preset_index

    # -- Lookups -------------------------------------------------------------

    def get(self, module_id: str) -> Optional[ModuleDescriptor]:
        """Return the descriptor for *module_id*, or ``None`` when unknown."""
        return self._modules.get(module_id)

    def all(self) -> list[ModuleDescriptor]:
        return list(self._modules.values())

    def ids(self) -> list[str]:
        return list(self._modules)

    def by_category(self, category: ModuleCategory | str) -> list[ModuleDescriptor]:
        return list(self._by_category.get(ModuleCategory(category), ()))

    def providers_of(self, capability: str) -> list[ModuleDescriptor]:
        """Modules that provide *capability* (or belong to a category of that name)."""
        return [m for m in self._modules.values() if m.provides_capability(capability)]

    def search(self, query: str) -> list[ModuleDescriptor]:
        """Case-insensitive substring search over ids, names, descriptions and tags."""
        needle = query.strip().lower()
        if not needle:
            return self.all()
        matches = []
        for module in self._modules.values():
            haystack = [
                module.id,
                module.name,
                module.description,
                module.category.value,
                *module.provides,
                *module.keywords,
            ]
            if any(needle in text.lower() for text in haystack):
                matches.append(module)
        return matches

    # -- Presets -------------------------------------------------------------

    @property
    def presets(self) -> dict[str, Preset]:
        return dict(self._presets)

    def preset(self, preset_id: str) -> Optional[Preset]:
        return self._presets.get(preset_id)

    # -- Container protocol --------------------------------------------------

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self) -> Iterator[ModuleDescriptor]:
        return iter(self._modules.values())

    # -- Loading -------------------------------------------------------------

    @classmethod
    def from_dicts(
        cls,
        modules: Iterable[Mapping[str, Any]],
        presets: Iterable[Mapping[str, Any]] | Mapping[str, Any] | None = None,
    ) -> "ModuleCatalog":
        """Build a catalog from raw descriptor dicts (camelCase or snake_case).

        *presets* may be a list of preset dicts or a ``{id: {...}}`` mapping.

        Raises:
            CatalogError: If a descriptor or preset fails validation.
        """
        descriptors: list[ModuleDescriptor] = []
        for position, raw in enumerate(modules):
            try:
                descriptors.append(ModuleDescriptor.model_validate(dict(raw)))
            except ValidationError as exc:
                label = raw.get("id", f"#{position}") if isinstance(raw, Mapping) else f"#{position}"
                raise CatalogError(f"Invalid module descriptor {label}: {exc}") from exc

        preset_models: list[Preset] = []
        if isinstance(presets, Mapping):
            presets = [{"id": key, **value} for key, value in presets.items()]
        for raw in presets or []:
            try:
                preset_models.append(Preset.model_validate(dict(raw)))
            except ValidationError as exc:
                raise CatalogError(f"Invalid preset {raw.get('id', '?')}: {exc}") from exc

        return cls(descriptors, preset_models)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ModuleCatalog":
        """Load a catalog from a YAML file with ``modules`` and ``presets`` keys."""
        catalog_path = Path(path)
        try:
            data = yaml.safe_load(catalog_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise CatalogError(f"Catalog {catalog_path} is not valid YAML: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("modules", []), list):
            raise CatalogError(f"Catalog {catalog_path} must map 'modules' to a list")
        return cls.from_dicts(data.get("modules", []), data.get("presets"))

    @classmethod
    def load_builtin(cls) -> "ModuleCatalog":
        """Load the catalog bundled with flowstate."""
        return cls.from_yaml(_BUILTIN_CATALOG)
