"""Stack module resolution and template composition.

Resolves a selection of pluggable stack modules into a complete, ordered,
conflict-free set, plans how every shared output file is merged, and
composes the final file set in memory.

Usage::

    from flowstate.modules import (
        DependencyResolver, MergePlanner, ModuleCatalog, TemplateComposer,
    )

    catalog = ModuleCatalog.load_builtin()
    result = DependencyResolver(catalog).resolve(["vue-base", "vuetify"])
    plan = MergePlanner().plan(result.modules)
    files = await TemplateComposer().compose(plan, provider, {"PROJECT_NAME": "demo"})
"""

from flowstate.modules.catalog import CatalogError, ModuleCatalog, Preset
from flowstate.modules.compatibility import CompatibilityChecker
from flowstate.modules.composer import (
    MergeStrategyConflict,
    TemplateComposer,
    substitute_variables,
)
from flowstate.modules.merge import CompositionError, Contribution, MergeError
from flowstate.modules.models import (
    CompatibilityReport,
    Contributor,
    FileEntry,
    FileSet,
    Issue,
    IssueKind,
    MergePlan,
    MergeStrategy,
    ModuleCategory,
    ModuleDescriptor,
    PathPlan,
    ResolutionOptions,
    ResolutionResult,
    StrategySource,
    Suggestion,
)
from flowstate.modules.planner import MergePlanner
from flowstate.modules.resolver import DependencyResolver, installation_order

__all__ = [
    "CatalogError",
    "CompatibilityChecker",
    "CompatibilityReport",
    "CompositionError",
    "Contribution",
    "Contributor",
    "DependencyResolver",
    "FileEntry",
    "FileSet",
    "Issue",
    "IssueKind",
    "MergeError",
    "MergePlan",
    "MergePlanner",
    "MergeStrategy",
    "MergeStrategyConflict",
    "ModuleCatalog",
    "ModuleCategory",
    "ModuleDescriptor",
    "PathPlan",
    "Preset",
    "ResolutionOptions",
    "ResolutionResult",
    "StrategySource",
    "Suggestion",
    "TemplateComposer",
    "installation_order",
    "substitute_variables",
]
