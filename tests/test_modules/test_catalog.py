"""Tests for the module catalog (flowstate.modules.catalog).

Covers:
- Lookups by id, category and capability
- Search and presets
- Validation of duplicate ids and unknown preset members
- YAML loading, including the built-in catalog
"""

from __future__ import annotations

from pathlib import Path

import pytest

from flowstate.modules.catalog import CatalogError, ModuleCatalog, Preset
from flowstate.modules.models import ModuleCategory


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:
    def test_get_known_and_unknown(self, vue_catalog):
        assert vue_catalog.get("vuetify").category == ModuleCategory.UI_LIBRARY
        assert vue_catalog.get("angular") is None

    def test_all_preserves_declaration_order(self, vue_catalog):
        assert [m.id for m in vue_catalog.all()] == [
            "vue-base", "react", "vuetify", "tailwind", "supabase",
        ]
        assert vue_catalog.ids() == [m.id for m in vue_catalog]

    def test_by_category(self, vue_catalog):
        assert [m.id for m in vue_catalog.by_category("ui-library")] == ["vuetify", "tailwind"]
        assert vue_catalog.by_category(ModuleCategory.AUTH_PROVIDER) == []

    def test_providers_of_capability(self, vue_catalog):
        assert [m.id for m in vue_catalog.providers_of("frontend")] == ["vue-base", "react"]
        assert [m.id for m in vue_catalog.providers_of("auth")] == ["supabase"]
        assert vue_catalog.providers_of("payments") == []

    def test_providers_of_category_name(self, vue_catalog):
        assert [m.id for m in vue_catalog.providers_of("backend-service")] == ["supabase"]

    def test_container_protocol(self, vue_catalog):
        assert "react" in vue_catalog
        assert "angular" not in vue_catalog
        assert len(vue_catalog) == 5

    def test_returned_lists_are_copies(self, vue_catalog):
        vue_catalog.all().clear()
        assert len(vue_catalog.all()) == 5


# ---------------------------------------------------------------------------
# Search and presets
# ---------------------------------------------------------------------------


class TestSearchAndPresets:
    def test_search_matches_id_and_capability(self, vue_catalog):
        assert [m.id for m in vue_catalog.search("VUE")] == ["vue-base", "vuetify"]
        assert [m.id for m in vue_catalog.search("database")] == ["supabase"]

    def test_empty_search_returns_everything(self, vue_catalog):
        assert len(vue_catalog.search("  ")) == 5

    def test_presets_from_mapping(self, vue_catalog_dicts):
        catalog = ModuleCatalog.from_dicts(
            vue_catalog_dicts,
            {"vue-ui": {"name": "Vue UI", "modules": ["vue-base", "vuetify"]}},
        )
        preset = catalog.preset("vue-ui")
        assert preset == Preset(id="vue-ui", name="Vue UI", modules=("vue-base", "vuetify"))
        assert catalog.preset("missing") is None

    def test_preset_with_unknown_module_rejected(self, vue_catalog_dicts):
        with pytest.raises(CatalogError, match="unknown modules: angular"):
            ModuleCatalog.from_dicts(vue_catalog_dicts, [{"id": "bad", "modules": ["angular"]}])


# ---------------------------------------------------------------------------
# Validation and loading
# ---------------------------------------------------------------------------


class TestLoading:
    def test_duplicate_id_rejected(self, vue_catalog_dicts):
        with pytest.raises(CatalogError, match="Duplicate module id: react"):
            ModuleCatalog.from_dicts(vue_catalog_dicts + [{"id": "react"}])

    def test_invalid_descriptor_wrapped(self):
        with pytest.raises(CatalogError, match="Invalid module descriptor broken"):
            ModuleCatalog.from_dicts([{"id": "broken", "category": "nonsense"}])

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "catalog.yaml"
        path.write_text(
            "modules:\n"
            "  - id: a\n"
            "    provides: [x]\n"
            "  - id: b\n"
            "    requires: [x]\n"
            "presets:\n"
            "  - id: both\n"
            "    modules: [a, b]\n",
            encoding="utf-8",
        )
        catalog = ModuleCatalog.from_yaml(path)
        assert catalog.ids() == ["a", "b"]
        assert catalog.preset("both").modules == ("a", "b")

    def test_from_yaml_rejects_bad_shape(self, tmp_path: Path):
        path = tmp_path / "catalog.yaml"
        path.write_text("modules: {a: 1}\n", encoding="utf-8")
        with pytest.raises(CatalogError):
            ModuleCatalog.from_yaml(path)

    def test_from_yaml_rejects_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "catalog.yaml"
        path.write_text("modules: [\n", encoding="utf-8")
        with pytest.raises(CatalogError, match="not valid YAML"):
            ModuleCatalog.from_yaml(path)


class TestBuiltinCatalog:
    def test_loads(self, builtin_catalog):
        assert {"vue-base", "vuetify", "react", "supabase", "base-config"} <= set(
            builtin_catalog.ids()
        )

    def test_vuetify_requires_frontend_from_vue_base(self, builtin_catalog):
        vuetify = builtin_catalog.get("vuetify")
        assert "frontend" in vuetify.requires
        assert "frontend" in builtin_catalog.get("vue-base").provides

    def test_every_preset_names_known_modules(self, builtin_catalog):
        assert builtin_catalog.presets
        for preset in builtin_catalog.presets.values():
            assert all(mid in builtin_catalog for mid in preset.modules)
