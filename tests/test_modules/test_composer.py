"""Tests for template composition (flowstate.modules.composer).

Covers:
- Variable substitution syntaxes and unknown names
- Composing merged and single-contributor paths
- Strict and non-strict handling of fallback conflicts
- Sync, async and failing content providers
- Binary content and idempotence
"""

from __future__ import annotations

import asyncio
import json

import pytest

from flowstate.modules.composer import (
    CompositionError,
    MergeError,
    MergeStrategyConflict,
    TemplateComposer,
    substitute_variables,
)
from flowstate.modules.planner import MergePlanner


pytestmark = pytest.mark.unit


def _provider(contents: dict[tuple[str, str], object]):
    def provide(module_id: str, path: str):
        return contents[(module_id, path)]

    return provide


def _plan(module_factory, manifests: dict[str, list]):
    modules = [module_factory(mid, fileManifest=paths) for mid, paths in manifests.items()]
    return MergePlanner().plan(modules)


# ---------------------------------------------------------------------------
# Variable substitution
# ---------------------------------------------------------------------------


class TestSubstituteVariables:
    @pytest.mark.parametrize(
        "template",
        ["{{PROJECT_NAME}}", "{{ PROJECT_NAME }}", "[PROJECT_NAME]", "__PROJECT_NAME__"],
    )
    def test_supported_syntaxes(self, template):
        assert substitute_variables(f"name: {template}", {"PROJECT_NAME": "demo"}) == "name: demo"

    def test_unknown_names_left_alone(self):
        text = "{{ MISSING }} [items] __init__"
        assert substitute_variables(text, {"OTHER": "x"}) == text

    def test_values_are_not_rescanned(self):
        assert substitute_variables("{{A}}", {"A": "{{B}}", "B": "no"}) == "{{B}}"


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


class TestTemplateComposer:
    async def test_merges_package_json(self, module_factory):
        plan = _plan(module_factory, {"vue-base": ["package.json"], "vuetify": ["package.json"]})
        provider = _provider({
            ("vue-base", "package.json"): '{"name": "{{PROJECT_SLUG}}", "dependencies": {"vue": "^3"}}',
            ("vuetify", "package.json"): '{"dependencies": {"vuetify": "^3"}}',
        })
        files = await TemplateComposer().compose(plan, provider, {"PROJECT_SLUG": "demo"})
        assert json.loads(files["package.json"]) == {
            "name": "demo",
            "dependencies": {"vue": "^3", "vuetify": "^3"},
        }

    async def test_single_contributor_copied(self, module_factory):
        plan = _plan(module_factory, {"a": ["notes.txt"]})
        files = await TemplateComposer().compose(plan, _provider({("a", "notes.txt"): "hi\n"}))
        assert files == {"notes.txt": b"hi\n"}

    async def test_module_name_defaults_to_contributor(self, module_factory):
        plan = _plan(module_factory, {"a": [".gitignore"], "b": [".gitignore"]})
        provider = _provider({
            ("a", ".gitignore"): "# [MODULE_NAME]\n",
            ("b", ".gitignore"): "# [MODULE_NAME]\n",
        })
        files = await TemplateComposer().compose(plan, provider)
        assert files[".gitignore"] == b"# a\n# b\n"

    async def test_non_template_entries_not_substituted(self, module_factory):
        module = module_factory("a", fileManifest=[{"path": "raw.txt", "isTemplate": False}])
        plan = MergePlanner().plan([module])
        files = await TemplateComposer().compose(
            plan, _provider({("a", "raw.txt"): "{{X}}"}), {"X": "y"}
        )
        assert files["raw.txt"] == b"{{X}}"

    async def test_replace_output_has_no_markers(self, module_factory):
        plan = _plan(module_factory, {"a": ["src/main.js"]})
        provider = _provider({("a", "src/main.js"): "a()\n// @flowstate:plugins\nb()\n"})
        files = await TemplateComposer().compose(plan, provider)
        assert files["src/main.js"] == b"a()\nb()\n"

    async def test_paths_in_plan_order(self, module_factory):
        plan = _plan(module_factory, {"a": ["z.txt", "a.txt", "m.txt"]})
        provider = _provider({("a", p): p for p in ("z.txt", "a.txt", "m.txt")})
        files = await TemplateComposer().compose(plan, provider)
        assert list(files) == ["z.txt", "a.txt", "m.txt"]

    async def test_async_provider(self, module_factory):
        plan = _plan(module_factory, {"a": ["x.txt"]})

        async def provide(module_id, path):
            await asyncio.sleep(0)
            return f"{module_id}:{path}"

        files = await TemplateComposer(max_parallel=1).compose(plan, provide)
        assert files["x.txt"] == b"a:x.txt"

    async def test_composition_is_idempotent(self, module_factory):
        plan = _plan(module_factory, {"a": ["package.json", ".env.example"], "b": ["package.json"]})
        provider = _provider({
            ("a", "package.json"): '{"b": 1, "a": [1]}',
            ("b", "package.json"): '{"a": [2]}',
            ("a", ".env.example"): "KEY={{PROJECT_NAME}}\n",
        })
        composer = TemplateComposer()
        context = {"PROJECT_NAME": "demo"}
        first = await composer.compose(plan, provider, context)
        second = await composer.compose(plan, provider, context)
        assert first == second


class TestConflictsAndErrors:
    async def test_strict_fallback_conflict_raises(self, module_factory):
        plan = _plan(module_factory, {"a": ["LICENSE"], "b": ["LICENSE"]})
        provider = _provider({("a", "LICENSE"): "MIT", ("b", "LICENSE"): "ISC"})
        with pytest.raises(MergeStrategyConflict) as exc_info:
            await TemplateComposer().compose(plan, provider)
        assert exc_info.value.path == "LICENSE"
        assert exc_info.value.contributors == ("a", "b")

    async def test_non_strict_last_contributor_wins(self, module_factory):
        plan = _plan(module_factory, {"a": ["LICENSE"], "b": ["LICENSE"]})
        provider = _provider({("a", "LICENSE"): "MIT", ("b", "LICENSE"): "ISC"})
        files = await TemplateComposer(strict=False).compose(plan, provider)
        assert files["LICENSE"] == b"ISC"
        assert [e.path for e in plan.fallback_conflicts()] == ["LICENSE"]

    async def test_merge_error_carries_path(self, module_factory):
        plan = _plan(module_factory, {"a": ["package.json"], "b": ["package.json"]})
        provider = _provider({("a", "package.json"): "{}", ("b", "package.json"): "{oops"})
        with pytest.raises(MergeError) as exc_info:
            await TemplateComposer().compose(plan, provider)
        assert exc_info.value.path == "package.json"

    async def test_provider_failure_wrapped(self, module_factory):
        plan = _plan(module_factory, {"a": ["x.txt", "y.txt"]})
        with pytest.raises(CompositionError, match="could not fetch content from a"):
            await TemplateComposer().compose(plan, _provider({("a", "x.txt"): "x"}))

    async def test_provider_must_return_text_or_bytes(self, module_factory):
        plan = _plan(module_factory, {"a": ["x.txt"]})
        with pytest.raises(CompositionError, match="must be str or bytes"):
            await TemplateComposer().compose(plan, _provider({("a", "x.txt"): 42}))

    async def test_binary_replace_passes_through(self, module_factory):
        plan = _plan(module_factory, {"a": ["logo.png"]})
        data = b"\x89PNG\r\n\x1a\n\xff\xfe"
        files = await TemplateComposer().compose(plan, _provider({("a", "logo.png"): data}))
        assert files["logo.png"] == data

    async def test_binary_cannot_be_merged(self, module_factory):
        plan = _plan(module_factory, {"a": [".gitignore"], "b": [".gitignore"]})
        provider = _provider({("a", ".gitignore"): b"\xff\xfe", ("b", ".gitignore"): "x"})
        with pytest.raises(CompositionError, match="binary content from a"):
            await TemplateComposer().compose(plan, provider)

    def test_max_parallel_must_be_positive(self):
        with pytest.raises(ValueError):
            TemplateComposer(max_parallel=0)

    def test_compose_sync(self, module_factory):
        plan = _plan(module_factory, {"a": ["x.txt"]})
        files = TemplateComposer().compose_sync(plan, _provider({("a", "x.txt"): "x"}))
        assert files == {"x.txt": b"x"}
