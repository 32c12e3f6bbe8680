"""Command-line entry point for ``flowstate``.

Exit status: 0 on success, 1 when resolution has blocking issues or the
project cannot be composed or written, 2 on usage errors.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from flowstate.config import Config
from flowstate.modules.catalog import CatalogError, ModuleCatalog
from flowstate.modules.merge import CompositionError
from flowstate.modules.models import ModuleCategory, ResolutionOptions
from flowstate.modules.planner import MergePlanner
from flowstate.modules.resolver import DependencyResolver
from flowstate.scaffolder.generator import ProjectGenerator, ResolutionFailed
from flowstate.scaffolder.writer import WriterError
from flowstate.utils import (
    console,
    print_error,
    print_issue_table,
    print_module_table,
    print_success,
    print_suggestions,
    print_summary_table,
    print_warning,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class UsageError(Exception):
    """Invalid command-line input that argparse cannot detect."""


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("modules", nargs="*", help="Module ids to include")
    parser.add_argument("--preset", "-p", default=None, help="Start from a named preset")
    parser.add_argument(
        "--no-auto-resolve",
        action="store_true",
        help="Do not add modules for missing capabilities",
    )
    parser.add_argument(
        "--allow-conflicts",
        action="store_true",
        help="Report blocking issues as warnings and continue",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowstate",
        description="flowstate -- scaffold projects from pluggable stack modules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  flowstate list --category ui-library\n"
            "  flowstate resolve vue-base vuetify\n"
            "  flowstate create my-app --preset vue-full-stack -o ./projects\n"
            "  flowstate create my-app react tailwind --var API_URL=http://localhost:3001\n"
        ),
    )
    parser.add_argument("--catalog", default=None, help="Module catalog YAML (default: built-in)")
    parser.add_argument("--templates", default=None, help="Module template directory")

    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List catalog modules")
    list_cmd.add_argument(
        "--category", "-c",
        choices=[c.value for c in ModuleCategory],
        default=None,
        help="Only show modules of this category",
    )
    list_cmd.add_argument("--search", "-s", default=None, help="Filter by keyword")

    show_cmd = sub.add_parser("show", help="Show one module in detail")
    show_cmd.add_argument("module", help="Module id")

    sub.add_parser("presets", help="List stack presets")

    resolve_cmd = sub.add_parser("resolve", help="Resolve a module selection")
    _add_selection_arguments(resolve_cmd)

    plan_cmd = sub.add_parser("plan", help="Show the merge plan for a selection")
    _add_selection_arguments(plan_cmd)

    create_cmd = sub.add_parser("create", help="Create a new project")
    create_cmd.add_argument("name", help="Project name")
    _add_selection_arguments(create_cmd)
    create_cmd.add_argument("--output", "-o", default=None, help="Parent directory (default: .)")
    create_cmd.add_argument("--description", "-d", default="", help="Project description")
    create_cmd.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra template variable (repeatable)",
    )
    create_cmd.add_argument("--overwrite", action="store_true", help="Replace an existing directory")
    create_cmd.add_argument("--dry-run", action="store_true", help="Compose but write nothing")

    return parser


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_catalog(config: Config) -> ModuleCatalog:
    if config.catalog_path is not None:
        return ModuleCatalog.from_yaml(config.catalog_path)
    return ModuleCatalog.load_builtin()


def _selection(catalog: ModuleCatalog, args: argparse.Namespace) -> list[str]:
    ids: list[str] = []
    if args.preset:
        preset = catalog.preset(args.preset)
        if preset is None:
            raise UsageError(
                f"Unknown preset '{args.preset}'. Available: {', '.join(catalog.presets)}"
            )
        ids.extend(preset.modules)
    ids.extend(args.modules)
    if not ids:
        raise UsageError("No modules selected; pass module ids or --preset")
    return ids


def _options(config: Config, args: argparse.Namespace) -> ResolutionOptions:
    defaults = config.resolution
    return ResolutionOptions(
        auto_resolve=defaults.auto_resolve and not args.no_auto_resolve,
        allow_conflicts=defaults.allow_conflicts or args.allow_conflicts,
    )


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise UsageError(f"Invalid --var '{pair}', expected KEY=VALUE")
        variables[key.strip()] = value
    return variables


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_list(catalog: ModuleCatalog, args: argparse.Namespace) -> int:
    modules = catalog.search(args.search) if args.search else catalog.all()
    if args.category:
        modules = [m for m in modules if m.category.value == args.category]
    if not modules:
        print_warning("No modules match.")
        return EXIT_OK
    print_module_table(modules, title=f"Modules ({len(modules)})")
    return EXIT_OK


def cmd_show(catalog: ModuleCatalog, args: argparse.Namespace) -> int:
    module = catalog.get(args.module)
    if module is None:
        print_error(f"Unknown module: {args.module}")
        return EXIT_FAILURE
    print_summary_table(
        {
            "Id": module.id,
            "Name": module.display_name,
            "Category": module.category.value,
            "Description": module.description,
            "Provides": ", ".join(module.provides) or "-",
            "Requires": ", ".join(module.requires) or "-",
            "Incompatible with": ", ".join(module.incompatible_with) or "-",
            "Works well with": ", ".join(module.compatible_with) or "-",
            "Exclusive": "yes" if module.exclusive_category else "no",
            "Files": "\n".join(module.paths()) or "-",
        },
        title=module.display_name,
    )
    return EXIT_OK


def cmd_presets(catalog: ModuleCatalog, args: argparse.Namespace) -> int:
    print_summary_table(
        {preset.id: ", ".join(preset.modules) for preset in catalog.presets.values()},
        title="Presets",
    )
    return EXIT_OK


def cmd_resolve(catalog: ModuleCatalog, config: Config, args: argparse.Namespace) -> int:
    result = DependencyResolver(catalog).resolve(_selection(catalog, args), _options(config, args))
    if not result.success:
        print_error("Resolution failed.")
        print_issue_table(result.errors, title="Errors")
        print_issue_table(result.warnings, title="Warnings")
        if result.suggestions:
            console.print("[bold]Suggestions:[/bold]")
            print_suggestions(result.suggestions)
        return EXIT_FAILURE

    print_module_table(result.modules, title="Resolved modules (install order)")
    if result.auto_added:
        print_warning(f"Added automatically: {', '.join(result.auto_added)}")
    print_issue_table(result.warnings, title="Warnings")
    print_success("Resolution succeeded.")
    return EXIT_OK


def cmd_plan(catalog: ModuleCatalog, config: Config, args: argparse.Namespace) -> int:
    result = DependencyResolver(catalog).resolve(_selection(catalog, args), _options(config, args))
    if not result.success:
        print_error("Resolution failed.")
        print_issue_table(result.errors, title="Errors")
        return EXIT_FAILURE

    plan = MergePlanner().plan(result.modules)
    print_summary_table(
        {
            path: f"{entry.strategy.value} ({entry.source.value}) <- {', '.join(entry.contributor_ids)}"
            for path, entry in plan.items()
        },
        title="Merge plan",
    )
    for entry in plan.fallback_conflicts():
        print_warning(
            f"{entry.path}: shared by {', '.join(entry.contributor_ids)} with no merge rule"
        )
    return EXIT_OK


def cmd_create(catalog: ModuleCatalog, config: Config, args: argparse.Namespace) -> int:
    ids = _selection(catalog, args)
    variables = _parse_vars(args.var)
    generator = ProjectGenerator(catalog, config, console=console)
    try:
        report = asyncio.run(
            generator.generate(
                args.name,
                ids,
                Path(args.output) if args.output else None,
                description=args.description,
                variables=variables,
                options=_options(config, args),
                overwrite=args.overwrite,
                dry_run=args.dry_run,
            )
        )
    except ResolutionFailed as exc:
        print_error(str(exc))
        print_issue_table(exc.result.errors, title="Errors")
        if exc.result.suggestions:
            console.print("[bold]Suggestions:[/bold]")
            print_suggestions(exc.result.suggestions)
        return EXIT_FAILURE
    except (CompositionError, WriterError) as exc:
        print_error(f"Error: {exc}")
        return EXIT_FAILURE

    print_issue_table(report.resolution.warnings, title="Warnings")
    if report.dry_run:
        print_summary_table({path: "" for path in report.files}, title="Files (dry run)")
    else:
        print_success(f"Created {args.name} at {report.project_root}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for ``flowstate`` / ``python -m flowstate.cli``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = Config.from_env()
    except ValidationError as exc:
        print_error(f"Error: invalid FLOWSTATE_* environment setting: {exc}")
        return EXIT_USAGE
    if args.catalog:
        config.catalog_path = Path(args.catalog)
    if args.templates:
        config.templates_dir = Path(args.templates)

    try:
        catalog = _load_catalog(config)
    except (CatalogError, OSError) as exc:
        print_error(f"Error: could not load catalog: {exc}")
        return EXIT_FAILURE

    try:
        if args.command == "list":
            return cmd_list(catalog, args)
        if args.command == "show":
            return cmd_show(catalog, args)
        if args.command == "presets":
            return cmd_presets(catalog, args)
        if args.command == "resolve":
            return cmd_resolve(catalog, config, args)
        if args.command == "plan":
            return cmd_plan(catalog, config, args)
        return cmd_create(catalog, config, args)
    except UsageError as exc:
        print_error(f"Error: {exc}")
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
