"""Pydantic v2 models for the stack module system.

Defines module descriptors as they are loaded from the catalog, the issues
reported by compatibility checks, resolution results, and the per-path merge
plan consumed by the composer.  Every model here is frozen: descriptors are
shared across resolutions and results are handed to callers that must not be
able to mutate them.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ModuleCategory(str, Enum):
    """The slot a module fills in a generated stack."""
    FRONTEND_FRAMEWORK = "frontend-framework"
    UI_LIBRARY = "ui-library"
    BACKEND_SERVICE = "backend-service"
    AUTH_PROVIDER = "auth-provider"
    BACKEND_FRAMEWORK = "backend-framework"
    OTHER = "other"


class IssueKind(str, Enum):
    """Classification of resolution issues and warnings."""
    UNKNOWN_MODULE_ID = "UnknownModuleId"
    MISSING_REQUIREMENT = "MissingRequirement"
    INCOMPATIBLE_PAIR = "IncompatiblePair"
    MULTIPLE_EXCLUSIVE_PROVIDERS = "MultipleExclusiveProviders"
    INCOMPATIBLE_FRAMEWORK = "IncompatibleFramework"
    UNRESOLVABLE_CYCLE = "UnresolvableCycle"
    RECOMMENDED_MISSING = "RecommendedMissing"
    MULTIPLE_UI_LIBRARIES = "MultipleUiLibraries"
    AUTH_OVERLAP = "AuthOverlap"
    MISSING_DATABASE = "MissingDatabase"


class MergeStrategy(str, Enum):
    """How contributions from several modules to one path are combined."""
    REPLACE = "replace"
    APPEND = "append"
    APPEND_UNIQUE = "append-unique"
    PREPEND = "prepend"
    MERGE_JSON = "merge-json"
    MERGE_JSON_SHALLOW = "merge-json-shallow"
    MERGE_PACKAGE = "merge-package"
    MERGE_YAML = "merge-yaml"
    MERGE_ENV = "merge-env"
    MERGE_ROUTES = "merge-routes"
    MERGE_STORES = "merge-stores"
    MERGE_ENTRY = "merge-entry"
    MERGE_ESLINT = "merge-eslint"
    MERGE_VITE_CONFIG = "merge-vite-config"


class StrategySource(str, Enum):
    """Which planner rule selected the strategy for a path."""
    SINGLE = "single"
    OVERRIDE = "override"
    DEFAULT = "default"
    FALLBACK = "fallback"


# Categories where at most one module may be selected unless a descriptor says
# otherwise.
EXCLUSIVE_BY_DEFAULT: frozenset[ModuleCategory] = frozenset({
    ModuleCategory.FRONTEND_FRAMEWORK,
    ModuleCategory.BACKEND_FRAMEWORK,
    ModuleCategory.BACKEND_SERVICE,
    ModuleCategory.AUTH_PROVIDER,
})

# Tie-break priority used when ordering resolved modules.
CATEGORY_PRIORITY: dict[ModuleCategory, int] = {
    ModuleCategory.FRONTEND_FRAMEWORK: 0,
    ModuleCategory.UI_LIBRARY: 1,
    ModuleCategory.BACKEND_FRAMEWORK: 2,
    ModuleCategory.BACKEND_SERVICE: 3,
    ModuleCategory.AUTH_PROVIDER: 4,
    ModuleCategory.OTHER: 5,
}


def normalise_path(value: str) -> str:
    """Return *value* as a clean POSIX path relative to the project root."""
    cleaned = value.replace("\\", "/").strip()
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    if not cleaned or cleaned.startswith("/"):
        raise ValueError(f"file path must be relative and non-empty: {value!r}")
    if ".." in PurePosixPath(cleaned).parts:
        raise ValueError(f"file path must not leave the project root: {value!r}")
    return cleaned


def _unique(values: Any) -> Any:
    """Drop duplicates from a sequence while keeping declaration order."""
    if isinstance(values, str):
        return (values,)
    if isinstance(values, (list, tuple)):
        return tuple(dict.fromkeys(values))
    return values


# ---------------------------------------------------------------------------
# Module descriptors
# ---------------------------------------------------------------------------

class FileEntry(BaseModel):
    """One file a module contributes to the generated project."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    path: str = Field(..., description="POSIX path relative to the project root")
    is_template: bool = Field(default=True, description="Whether variable substitution applies")

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        return normalise_path(value)


class ModuleDescriptor(BaseModel):
    """Immutable description of a pluggable stack module.

    Accepts the external camelCase format (``incompatibleWith``,
    ``fileManifest``, ``mergeOverrides`` ...) as well as snake_case field
    names.  ``mergeOverrides`` is kept as an ordered tuple of
    ``(glob, strategy)`` pairs because the first matching pattern wins.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique module id, e.g. 'vue-base'")
    name: str = Field(default="", description="Human-readable module name")
    description: str = Field(default="", description="Short module description")
    category: ModuleCategory = Field(default=ModuleCategory.OTHER)
    provides: tuple[str, ...] = Field(default=(), description="Capability tags offered")
    requires: tuple[str, ...] = Field(default=(), description="Capability tags or category names needed")
    incompatible_with: tuple[str, ...] = Field(default=())
    compatible_with: tuple[str, ...] = Field(default=(), description="Recommended companions (advisory)")
    exclusive_category: bool = Field(default=False)
    file_manifest: tuple[FileEntry, ...] = Field(default=())
    merge_overrides: tuple[tuple[str, MergeStrategy], ...] = Field(default=())
    compatible_frameworks: tuple[str, ...] = Field(
        default=(), description="Frontend framework ids a UI library supports (empty = any)"
    )
    keywords: tuple[str, ...] = Field(default=())

    @model_validator(mode="before")
    @classmethod
    def _default_exclusivity(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "exclusiveCategory" in data or "exclusive_category" in data:
            return data
        category = ModuleCategory(data.get("category", ModuleCategory.OTHER))
        return {**data, "exclusive_category": category in EXCLUSIVE_BY_DEFAULT}

    @field_validator(
        "provides", "requires", "incompatible_with", "compatible_with",
        "compatible_frameworks", "keywords",
        mode="before",
    )
    @classmethod
    def _dedupe(cls, value: Any) -> Any:
        return _unique(value)

    @field_validator("file_manifest", mode="before")
    @classmethod
    def _coerce_manifest(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        entries = [{"path": item} if isinstance(item, str) else item for item in value]
        seen: set[str] = set()
        unique_entries = []
        for entry in entries:
            path = entry.path if isinstance(entry, FileEntry) else entry.get("path")
            if isinstance(path, str):
                path = normalise_path(path)
            if path in seen:
                continue
            seen.add(path)
            unique_entries.append(entry)
        return tuple(unique_entries)

    @field_validator("merge_overrides", mode="before")
    @classmethod
    def _coerce_overrides(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return tuple(value.items())
        return value

    # -- Queries -------------------------------------------------------------

    def provides_capability(self, capability: str) -> bool:
        """True when *capability* is provided or names this module's category."""
        return capability in self.provides or capability == self.category.value

    def paths(self) -> list[str]:
        """Return the manifest paths in declaration order."""
        return [entry.path for entry in self.file_manifest]

    @property
    def display_name(self) -> str:
        return self.name or self.id


# ---------------------------------------------------------------------------
# Issues and compatibility reports
# ---------------------------------------------------------------------------

class Issue(BaseModel):
    """A problem (blocking) or advisory warning found while resolving."""

    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    message: str = Field(default="")
    module: Optional[str] = Field(default=None, description="Module the issue was raised for")
    capability: Optional[str] = Field(default=None, description="Missing capability, if any")
    other: Optional[str] = Field(default=None, description="Conflicting module id, if any")
    modules: tuple[str, ...] = Field(default=(), description="Members of a dependency cycle")
    blocking: bool = Field(default=True)

    def as_warning(self) -> Issue:
        """Return a non-blocking copy of this issue."""
        return self.model_copy(update={"blocking": False})

    def dedupe_key(self) -> tuple[Any, ...]:
        """Key under which two issues describe the same problem.

        Pair issues are symmetric: ``A incompatible with B`` and
        ``B incompatible with A`` collapse to one entry.
        """
        if self.kind in (IssueKind.INCOMPATIBLE_PAIR, IssueKind.MULTIPLE_EXCLUSIVE_PROVIDERS):
            return (self.kind, frozenset({self.module, self.other}))
        return (self.kind, self.module, self.capability, self.other, self.modules)


class CompatibilityReport(BaseModel):
    """Result of checking one candidate module against a proposed set."""

    model_config = ConfigDict(frozen=True)

    issues: tuple[Issue, ...] = Field(default=())
    warnings: tuple[Issue, ...] = Field(default=())

    @property
    def compatible(self) -> bool:
        return not self.issues

    def merged(self, other: CompatibilityReport) -> CompatibilityReport:
        """Union of two reports, keeping this report's entries first."""
        return CompatibilityReport(
            issues=self.issues + other.issues,
            warnings=self.warnings + other.warnings,
        )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class ResolutionOptions(BaseModel):
    """Knobs for a single ``resolve()`` call."""

    model_config = ConfigDict(frozen=True)

    auto_resolve: bool = Field(default=True, description="Add providers for missing capabilities")
    allow_conflicts: bool = Field(default=False, description="Downgrade blocking issues to warnings")


class Suggestion(BaseModel):
    """A proposed fix for a failed resolution."""

    model_config = ConfigDict(frozen=True)

    action: str = Field(..., description="'add' or 'replace'")
    module: str = Field(..., description="Module to add, or module to be replaced")
    replacement: Optional[str] = Field(default=None)
    reason: str = Field(default="")


class ResolutionResult(BaseModel):
    """Outcome of a resolution: an ordered module set or a complete error list."""

    model_config = ConfigDict(frozen=True)

    success: bool
    modules: tuple[ModuleDescriptor, ...] = Field(default=())
    errors: tuple[Issue, ...] = Field(default=())
    warnings: tuple[Issue, ...] = Field(default=())
    auto_added: tuple[str, ...] = Field(default=(), description="Ids added by auto-resolution")
    suggestions: tuple[Suggestion, ...] = Field(default=())

    @property
    def module_ids(self) -> list[str]:
        return [module.id for module in self.modules]

    def errors_of(self, kind: IssueKind) -> list[Issue]:
        return [issue for issue in self.errors if issue.kind == kind]


# ---------------------------------------------------------------------------
# Merge plan
# ---------------------------------------------------------------------------

class Contributor(BaseModel):
    """A module contributing content to one output path."""

    model_config = ConfigDict(frozen=True)

    module_id: str
    is_template: bool = True


class PathPlan(BaseModel):
    """Merge strategy and ordered contributors for one output path."""

    model_config = ConfigDict(frozen=True)

    path: str
    strategy: MergeStrategy
    source: StrategySource
    contributors: tuple[Contributor, ...]

    @property
    def contributor_ids(self) -> list[str]:
        return [c.module_id for c in self.contributors]

    @property
    def is_fallback_conflict(self) -> bool:
        """Several contributors and no rule said how to combine them."""
        return self.source == StrategySource.FALLBACK and len(self.contributors) > 1


class MergePlan(BaseModel):
    """Per-path merge plan for one composition run, in first-seen path order."""

    model_config = ConfigDict(frozen=True)

    entries: dict[str, PathPlan] = Field(default_factory=dict)

    def paths(self) -> list[str]:
        return list(self.entries)

    def items(self) -> list[tuple[str, PathPlan]]:
        return list(self.entries.items())

    def values(self) -> list[PathPlan]:
        return list(self.entries.values())

    def fallback_conflicts(self) -> list[PathPlan]:
        return [entry for entry in self.entries.values() if entry.is_fallback_conflict]

    def __getitem__(self, path: str) -> PathPlan:
        return self.entries[path]

    def __contains__(self, path: object) -> bool:
        return path in self.entries

    def __len__(self) -> int:
        return len(self.entries)


# Final composed output: path -> file bytes, in plan order.
FileSet = dict[str, bytes]
