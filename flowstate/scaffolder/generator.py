"""Main scaffolding orchestrator.

Chains the module pipeline for one project: resolve the selection against
the catalog, plan per-path merges, compose the file set in memory, then
commit it to disk through the transactional writer.
"""

from __future__ import annotations

import datetime
import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.markup import escape

from flowstate.config import Config
from flowstate.modules.catalog import ModuleCatalog
from flowstate.modules.composer import ContentProvider, TemplateComposer
from flowstate.modules.models import MergePlan, ResolutionOptions, ResolutionResult
from flowstate.modules.planner import MergePlanner
from flowstate.modules.resolver import DependencyResolver

from .templates import ModuleTemplateProvider, slugify
from .writer import FileSetWriter


class ResolutionFailed(Exception):
    """Raised when the module selection has blocking issues."""

    def __init__(self, result: ResolutionResult) -> None:
        self.result = result
        kinds = ", ".join(sorted({issue.kind.value for issue in result.errors}))
        super().__init__(f"Module resolution failed ({len(result.errors)} issue(s): {kinds})")


class GenerationReport(BaseModel):
    """Outcome of one :meth:`ProjectGenerator.generate` call."""

    model_config = ConfigDict(frozen=True)

    project_root: Path
    resolution: ResolutionResult
    plan: MergePlan
    files: tuple[str, ...] = Field(default=(), description="Generated paths, in plan order")
    dry_run: bool = False


# ---------------------------------------------------------------------------
# Main generator
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """Generates a project directory from a module selection.

    Args:
        catalog: The module catalog to resolve against.
        config: Global settings; defaults to ``Config()``.
        provider: Content provider; defaults to a
            :class:`ModuleTemplateProvider` over ``config.templates_dir``.
        console: Rich console for progress output; ``None`` keeps the
            generator silent.
    """

    def __init__(
        self,
        catalog: ModuleCatalog,
        config: Optional[Config] = None,
        *,
        provider: Optional[ContentProvider] = None,
        console: Optional[Console] = None,
    ) -> None:
        self.catalog = catalog
        self.config = config or Config()
        self.provider = provider
        self.console = console
        self.resolver = DependencyResolver(catalog)
        self.planner = MergePlanner()
        self.composer = TemplateComposer(
            strict=self.config.composition.strict_merge,
            max_parallel=self.config.composition.max_parallel_fetch,
        )

    # -- Public API --------------------------------------------------------

    async def generate(
        self,
        project_name: str,
        module_ids: Iterable[str],
        output_dir: str | Path | None = None,
        *,
        description: str = "",
        variables: Optional[Mapping[str, str]] = None,
        options: Optional[ResolutionOptions] = None,
        overwrite: bool = False,
        dry_run: bool = False,
    ) -> GenerationReport:
        """Generate the project.

        Args:
            project_name: Name of the project; its slug names the directory.
            module_ids: Requested module ids.
            output_dir: Parent directory; defaults to ``config.output_dir``.
            description: Short project description.
            variables: Extra substitution variables; they override the
                built-in ones.
            options: Resolution options; defaults to ``config.resolution``.
            overwrite: Replace an existing non-empty project directory.
            dry_run: Resolve, plan and compose, but write nothing.

        Returns:
            A :class:`GenerationReport`.

        Raises:
            ResolutionFailed: If resolution reports blocking issues.
            CompositionError: If any path fails to compose.
            WriterError: If the file set cannot be committed.
        """
        slug = slugify(project_name) or "project"
        project_root = Path(output_dir or self.config.output_dir) / slug

        # 1. Resolve the module selection
        self._step(1, "Resolving modules")
        result = self.resolver.resolve(module_ids, options or self.config.resolution.as_options())
        if not result.success:
            raise ResolutionFailed(result)
        self._info(f"Resolved {len(result.modules)} modules: {', '.join(result.module_ids)}")

        # 2. Plan per-path merges
        self._step(2, "Planning merges")
        plan = self.planner.plan(result.modules)
        shared = [entry for entry in plan.values() if len(entry.contributors) > 1]
        self._info(f"{len(plan)} files, {len(shared)} shared between modules")

        # 3. Compose the file set in memory
        self._step(3, "Composing files")
        context = self._build_context(project_name, slug, description, variables)
        provider = self.provider or ModuleTemplateProvider(
            self.config.templates_dir,
            self._build_render_context(project_name, slug, description, result),
        )
        file_set = await self.composer.compose(plan, provider, context)

        # 4. Commit to disk
        if dry_run:
            self._info("Dry run: nothing written")
        else:
            self._step(4, "Writing project")
            await FileSetWriter(overwrite=overwrite).write(file_set, project_root)
            self._info(f"Wrote {len(file_set)} files to {project_root}")

        return GenerationReport(
            project_root=project_root,
            resolution=result,
            plan=plan,
            files=tuple(file_set),
            dry_run=dry_run,
        )

    # -- Context building --------------------------------------------------

    def _build_context(
        self,
        project_name: str,
        slug: str,
        description: str,
        variables: Optional[Mapping[str, str]],
    ) -> dict[str, str]:
        """Substitution variables for ``{{VAR}}``, ``[VAR]`` and ``__VAR__``."""
        context = {
            "PROJECT_NAME": project_name,
            "PROJECT_SLUG": slug,
            "PROJECT_DESCRIPTION": description,
            "AUTHOR_NAME": self.config.author_name,
            "AUTHOR_EMAIL": self.config.author_email,
            "CURRENT_YEAR": str(datetime.date.today().year),
        }
        context.update(variables or {})
        # Body of a JSON string literal, for "description": "..." slots.
        context.setdefault(
            "PROJECT_DESCRIPTION_JSON",
            json.dumps(context["PROJECT_DESCRIPTION"], ensure_ascii=False)[1:-1],
        )
        return context

    @staticmethod
    def _build_render_context(
        project_name: str,
        slug: str,
        description: str,
        result: ResolutionResult,
    ) -> dict[str, Any]:
        """Build the Jinja2 template context from the resolved modules."""
        return {
            "project_name": project_name,
            "project_name_slug": slug,
            "description": description,
            "module_ids": result.module_ids,
            "modules": [
                {
                    "id": m.id,
                    "name": m.display_name,
                    "category": m.category.value,
                    "description": m.description,
                }
                for m in result.modules
            ],
            "capabilities": sorted({cap for m in result.modules for cap in m.provides}),
        }

    # -- Output ------------------------------------------------------------

    def _step(self, number: int, name: str) -> None:
        if self.console is not None:
            self.console.print(f"[bold cyan]{number}.[/bold cyan] {escape(name)}")

    def _info(self, message: str) -> None:
        if self.console is not None:
            self.console.print(f"   [dim]{escape(message)}[/dim]")
