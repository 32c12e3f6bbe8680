"""Tests for the command-line interface (flowstate.cli).

Covers:
- list, show and presets over the built-in catalog
- resolve and plan exit codes and output
- create writing a project, dry runs and bad --var input
- Usage errors and catalog loading failures
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from flowstate.cli import EXIT_FAILURE, EXIT_OK, EXIT_USAGE, build_parser, main


pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clean_env():
    """Keep FLOWSTATE_* variables from the host out of the tests."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("FLOWSTATE_")}
    with patch.dict(os.environ, env, clear=True):
        yield


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    def test_create_arguments(self):
        args = build_parser().parse_args([
            "create", "my-app", "vue-base", "-p", "vue-frontend",
            "--var", "A=1", "--var", "B=2", "--dry-run",
        ])
        assert args.command == "create"
        assert args.name == "my-app"
        assert args.modules == ["vue-base"]
        assert args.preset == "vue-frontend"
        assert args.var == ["A=1", "B=2"]
        assert args.dry_run is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


# ---------------------------------------------------------------------------
# Catalog browsing
# ---------------------------------------------------------------------------


class TestBrowsing:
    def test_list(self, capsys):
        assert main(["list"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "vue-base" in out
        assert "express" in out

    def test_list_by_category(self, capsys):
        assert main(["list", "--category", "ui-library"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "vuetify" in out
        assert "supabase" not in out

    def test_list_no_match(self, capsys):
        assert main(["list", "--search", "cobol"]) == EXIT_OK
        assert "No modules match" in capsys.readouterr().out

    def test_show(self, capsys):
        assert main(["show", "vuetify"]) == EXIT_OK
        assert "frontend" in capsys.readouterr().out

    def test_show_unknown(self, capsys):
        assert main(["show", "angular"]) == EXIT_FAILURE
        assert "Unknown module" in capsys.readouterr().out

    def test_presets(self, capsys):
        assert main(["presets"]) == EXIT_OK
        assert "vue-full-stack" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# resolve / plan
# ---------------------------------------------------------------------------


class TestResolveAndPlan:
    def test_resolve_success(self, capsys):
        assert main(["resolve", "vuetify"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "vue-base" in out
        assert "Resolution succeeded" in out

    def test_resolve_conflict(self, capsys):
        assert main(["resolve", "vue-base", "react"]) == EXIT_FAILURE
        assert "IncompatiblePair" in capsys.readouterr().out

    def test_resolve_without_auto_resolve(self, capsys):
        assert main(["resolve", "vuetify", "--no-auto-resolve"]) == EXIT_FAILURE
        out = capsys.readouterr().out
        assert "MissingRequirement" in out
        assert "add vue-base" in out

    def test_allow_conflicts(self):
        assert main(["resolve", "vue-base", "react", "--allow-conflicts"]) == EXIT_OK

    def test_resolve_preset(self, capsys):
        assert main(["resolve", "--preset", "vue-full-stack"]) == EXIT_OK
        assert "supabase" in capsys.readouterr().out

    def test_plan(self, capsys):
        assert main(["plan", "vue-base", "vuetify"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "merge-json" in out
        assert "merge-entry" in out

    @pytest.mark.parametrize(
        "argv",
        [["resolve"], ["resolve", "--preset", "nope"], ["plan", "--preset", "nope"]],
    )
    def test_usage_errors(self, argv):
        assert main(argv) == EXIT_USAGE


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_creates_project(self, tmp_path: Path, capsys):
        code = main([
            "create", "My App", "vue-base", "vuetify",
            "-o", str(tmp_path), "-d", "Demo project",
        ])
        assert code == EXIT_OK
        root = tmp_path / "my-app"
        package = json.loads((root / "package.json").read_text())
        assert package["name"] == "my-app"
        assert package["description"] == "Demo project"
        assert "vuetify" in package["dependencies"]
        assert "Created My App" in capsys.readouterr().out

    def test_dry_run(self, tmp_path: Path, capsys):
        code = main(["create", "app", "--preset", "react-minimal", "-o", str(tmp_path), "--dry-run"])
        assert code == EXIT_OK
        assert list(tmp_path.iterdir()) == []
        assert "package.json" in capsys.readouterr().out

    def test_existing_directory_fails(self, tmp_path: Path):
        (tmp_path / "app").mkdir()
        (tmp_path / "app" / "keep.txt").write_text("x")
        assert main(["create", "app", "react", "-o", str(tmp_path)]) == EXIT_FAILURE
        assert main(["create", "app", "react", "-o", str(tmp_path), "--overwrite"]) == EXIT_OK
        assert not (tmp_path / "app" / "keep.txt").exists()

    def test_resolution_failure(self, tmp_path: Path):
        assert main(["create", "app", "vue-base", "react", "-o", str(tmp_path)]) == EXIT_FAILURE
        assert list(tmp_path.iterdir()) == []

    def test_bad_var(self, tmp_path: Path):
        argv = ["create", "app", "react", "-o", str(tmp_path), "--var", "NOVALUE"]
        assert main(argv) == EXIT_USAGE


# ---------------------------------------------------------------------------
# Catalog loading
# ---------------------------------------------------------------------------


class TestCatalogOption:
    def test_missing_catalog_file(self, tmp_path: Path, capsys):
        assert main(["--catalog", str(tmp_path / "none.yaml"), "list"]) == EXIT_FAILURE
        assert "could not load catalog" in capsys.readouterr().out

    def test_custom_catalog(self, tmp_path: Path, capsys):
        path = tmp_path / "catalog.yaml"
        path.write_text("modules:\n  - id: solo\n    description: Only one\n", encoding="utf-8")
        assert main(["--catalog", str(path), "list"]) == EXIT_OK
        assert "solo" in capsys.readouterr().out

    def test_catalog_from_environment(self, tmp_path: Path, capsys):
        path = tmp_path / "catalog.yaml"
        path.write_text("modules:\n  - id: from-env\n", encoding="utf-8")
        with patch.dict(os.environ, {"FLOWSTATE_CATALOG": str(path)}):
            assert main(["list"]) == EXIT_OK
        assert "from-env" in capsys.readouterr().out

    def test_bad_environment_setting(self, capsys):
        with patch.dict(os.environ, {"FLOWSTATE_MAX_PARALLEL_FETCH": "lots"}):
            assert main(["list"]) == EXIT_USAGE
        assert "invalid FLOWSTATE_* environment setting" in capsys.readouterr().out
