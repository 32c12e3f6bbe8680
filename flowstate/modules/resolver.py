"""Dependency resolution for stack module selections.

Turns a list of requested module ids into a complete, conflict-free set of
descriptors ordered so that providers come before the modules that depend
on them.  Resolution is a bounded fixed-point iteration: each pass checks
the current selection, and (when allowed) adds one provider per missing
capability.  Issues are accumulated and returned together; nothing is ever
raised for a bad selection.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Sequence
from typing import Optional

from .catalog import ModuleCatalog
from .compatibility import CompatibilityChecker
from .models import (
    CATEGORY_PRIORITY,
    Issue,
    IssueKind,
    ModuleDescriptor,
    ResolutionOptions,
    ResolutionResult,
    Suggestion,
)


_REPLACEABLE_KINDS = (
    IssueKind.INCOMPATIBLE_PAIR,
    IssueKind.MULTIPLE_EXCLUSIVE_PROVIDERS,
    IssueKind.INCOMPATIBLE_FRAMEWORK,
)


def _order_key(module: ModuleDescriptor) -> tuple[int, str]:
    return (CATEGORY_PRIORITY[module.category], module.id)


def _dedupe(issues: Iterable[Issue]) -> tuple[Issue, ...]:
    seen: dict[tuple, Issue] = {}
    for issue in issues:
        seen.setdefault(issue.dedupe_key(), issue)
    return tuple(seen.values())


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _dependency_waits(modules: Sequence[ModuleDescriptor]) -> dict[str, dict[str, set[str]]]:
    """Map each module id to the providers it waits on, per required capability."""
    waits: dict[str, dict[str, set[str]]] = {}
    for dependent in modules:
        per_capability: dict[str, set[str]] = {}
        for capability in dependent.requires:
            providers = {
                provider.id for provider in modules
                if provider.id != dependent.id and provider.provides_capability(capability)
            }
            if providers:
                per_capability[capability] = providers
        waits[dependent.id] = per_capability
    return waits


def _cycles(remaining: set[str], edges: dict[str, set[str]]) -> list[list[str]]:
    """Group the nodes left over by Kahn's algorithm into strongly connected cycles."""

    def reachable(start: str) -> set[str]:
        seen: set[str] = set()
        stack = [n for n in edges[start] if n in remaining]
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(n for n in edges[node] if n in remaining)
        return seen

    reach = {node: reachable(node) for node in remaining}
    groups: list[list[str]] = []
    assigned: set[str] = set()
    for node in sorted(remaining):
        if node in assigned or node not in reach[node]:
            continue
        members = sorted(n for n in reach[node] if node in reach[n])
        assigned.update(members)
        groups.append(members)
    return groups


def _topological_order(
    modules: Sequence[ModuleDescriptor],
) -> tuple[list[ModuleDescriptor], list[list[str]]]:
    """Kahn's algorithm with a (category priority, id) ready queue.

    A module normally waits for every selected provider of each capability
    it requires.  When the queue runs dry, a requirement that an already
    ordered module satisfies stops waiting on the other providers, and the
    sort resumes.  Whatever is still stuck after that depends only on
    providers inside the stuck set; those strongly connected groups are
    returned as cycles.  Stuck modules are appended in (category priority,
    id) order so the result always covers the whole input.
    """
    by_id = {m.id: m for m in modules}
    waits = _dependency_waits(modules)

    def is_ready(module_id: str) -> bool:
        return not any(waits[module_id].values())

    ready = [_order_key(m) for m in modules if is_ready(m.id)]
    heapq.heapify(ready)
    queued = {module_id for _, module_id in ready}
    ordered: list[ModuleDescriptor] = []

    while ready:
        while ready:
            _, module_id = heapq.heappop(ready)
            ordered.append(by_id[module_id])
            for other in by_id:
                if other in queued:
                    continue
                for providers in waits[other].values():
                    providers.discard(module_id)
                if is_ready(other):
                    queued.add(other)
                    heapq.heappush(ready, _order_key(by_id[other]))

        for module in modules:
            if module.id in queued:
                continue
            for capability, providers in waits[module.id].items():
                if providers and any(m.provides_capability(capability) for m in ordered):
                    providers.clear()
            if is_ready(module.id):
                queued.add(module.id)
                heapq.heappush(ready, _order_key(module))

    remaining = set(by_id) - queued
    if not remaining:
        return ordered, []
    edges: dict[str, set[str]] = {mid: set() for mid in remaining}
    for dependent in remaining:
        for providers in waits[dependent].values():
            for provider in providers:
                edges[provider].add(dependent)
    ordered.extend(sorted((by_id[mid] for mid in remaining), key=_order_key))
    return ordered, _cycles(remaining, edges)


def installation_order(modules: Sequence[ModuleDescriptor]) -> list[ModuleDescriptor]:
    """Order *modules* providers-first, ties broken by category priority then id."""
    ordered, _ = _topological_order(modules)
    return ordered


# ---------------------------------------------------------------------------
# DependencyResolver
# ---------------------------------------------------------------------------


class DependencyResolver:
    """Resolves module selections against a catalog.

    The resolver holds no per-call state, so one instance can serve
    concurrent ``resolve()`` calls.

    When several modules provide a missing capability, the provider is
    chosen by, in order: being recommended (``compatible_with``) by a
    selected module that requires the capability, being recommended by any
    selected module, then catalog declaration order.
    """

    def __init__(
        self,
        catalog: ModuleCatalog,
        checker: Optional[CompatibilityChecker] = None,
    ) -> None:
        self.catalog = catalog
        self.checker = checker or CompatibilityChecker()

    def resolve(
        self,
        module_ids: Iterable[str],
        options: Optional[ResolutionOptions] = None,
    ) -> ResolutionResult:
        """Resolve *module_ids* into an ordered module set.

        Args:
            module_ids: Requested module ids.  Duplicates are ignored.
            options: Resolution knobs; defaults to auto-resolve on,
                conflicts not allowed.

        Returns:
            A :class:`ResolutionResult`.  On failure ``modules`` is empty
            and ``errors`` lists every blocking issue found.
        """
        options = options or ResolutionOptions()
        requested = list(dict.fromkeys(module_ids))

        unknown = [mid for mid in requested if mid not in self.catalog]
        if unknown:
            return ResolutionResult(
                success=False,
                errors=tuple(
                    Issue(
                        kind=IssueKind.UNKNOWN_MODULE_ID,
                        module=mid,
                        message=f"Unknown module: {mid}",
                    )
                    for mid in unknown
                ),
            )

        selected: dict[str, ModuleDescriptor] = {mid: self.catalog.get(mid) for mid in requested}
        tried: dict[str, set[str]] = {}
        auto_added: list[str] = []
        converged = False

        for _ in range(max(len(self.catalog), 1)):
            missing = self._missing_capabilities(selected)
            if not missing or not options.auto_resolve:
                converged = True
                break
            added = False
            for capability, dependents in missing.items():
                if not self._still_missing(capability, dependents, selected):
                    continue
                provider = self._pick_provider(
                    capability, dependents, selected, tried.setdefault(capability, set())
                )
                if provider is None:
                    continue
                tried[capability].add(provider.id)
                selected[provider.id] = provider
                auto_added.append(provider.id)
                added = True
            if not added:
                converged = True
                break

        modules = list(selected.values())
        report = self.checker.check_all(modules)
        issues = list(report.issues)

        if not converged and self._missing_capabilities(selected):
            stuck = sorted(
                {mid for deps in self._missing_capabilities(selected).values() for mid in deps}
            )
            issues.append(Issue(
                kind=IssueKind.UNRESOLVABLE_CYCLE,
                modules=tuple(stuck),
                message=f"Resolution did not converge for: {', '.join(stuck)}",
            ))

        ordered, cycles = _topological_order(modules)
        for members in cycles:
            issues.append(Issue(
                kind=IssueKind.UNRESOLVABLE_CYCLE,
                modules=tuple(members),
                message=f"Capability cycle between: {', '.join(members)}",
            ))

        errors = _dedupe(issues)
        warnings = _dedupe(report.warnings)

        if errors and not options.allow_conflicts:
            return ResolutionResult(
                success=False,
                errors=errors,
                warnings=warnings,
                auto_added=tuple(auto_added),
                suggestions=tuple(self._suggest(errors, modules)),
            )

        return ResolutionResult(
            success=True,
            modules=tuple(ordered),
            warnings=tuple(issue.as_warning() for issue in errors) + warnings,
            auto_added=tuple(auto_added),
        )

    # -- Internals -------------------------------------------------------------

    def _missing_capabilities(self, selected: dict[str, ModuleDescriptor]) -> dict[str, list[str]]:
        """Capability -> ids of the modules that need it, in selection order."""
        modules = list(selected.values())
        missing: dict[str, list[str]] = {}
        for module in modules:
            for issue in self.checker.check(module, modules).issues:
                if issue.kind == IssueKind.MISSING_REQUIREMENT and issue.capability:
                    missing.setdefault(issue.capability, []).append(module.id)
        return missing

    @staticmethod
    def _still_missing(
        capability: str,
        dependents: list[str],
        selected: dict[str, ModuleDescriptor],
    ) -> bool:
        return any(
            not any(
                m.id != dependent and m.provides_capability(capability)
                for m in selected.values()
            )
            for dependent in dependents
        )

    def _pick_provider(
        self,
        capability: str,
        dependents: list[str],
        selected: dict[str, ModuleDescriptor],
        tried: set[str],
    ) -> Optional[ModuleDescriptor]:
        candidates = [
            m for m in self.catalog.providers_of(capability)
            if m.id not in selected and m.id not in tried
        ]
        if not candidates:
            return None

        recommended_by_dependents = {
            rec for mid in dependents for rec in selected[mid].compatible_with
        }
        recommended = {rec for m in selected.values() for rec in m.compatible_with}
        for pool in (recommended_by_dependents, recommended):
            for module in candidates:
                if module.id in pool:
                    return module
        return candidates[0]

    def _suggest(
        self,
        errors: Sequence[Issue],
        modules: list[ModuleDescriptor],
    ) -> list[Suggestion]:
        suggestions: list[Suggestion] = []
        selected = {m.id: m for m in modules}
        seen: set[tuple[str, str]] = set()

        for issue in errors:
            if issue.kind == IssueKind.MISSING_REQUIREMENT and issue.capability:
                provider = self._pick_provider(
                    issue.capability, [issue.module] if issue.module else [], selected, set()
                )
                if provider is not None and ("add", provider.id) not in seen:
                    seen.add(("add", provider.id))
                    suggestions.append(Suggestion(
                        action="add",
                        module=provider.id,
                        reason=f"provides '{issue.capability}' required by {issue.module}",
                    ))
            elif issue.kind in _REPLACEABLE_KINDS:
                target = issue.module if issue.kind == IssueKind.INCOMPATIBLE_FRAMEWORK else issue.other
                if target is None or target not in selected or ("replace", target) in seen:
                    continue
                alternative = self._alternative_for(selected[target], modules)
                if alternative is not None:
                    seen.add(("replace", target))
                    suggestions.append(Suggestion(
                        action="replace",
                        module=target,
                        replacement=alternative.id,
                        reason=issue.message,
                    ))
        return suggestions

    def _alternative_for(
        self,
        module: ModuleDescriptor,
        modules: list[ModuleDescriptor],
    ) -> Optional[ModuleDescriptor]:
        """First same-category module that fits the rest of the selection."""
        rest = [m for m in modules if m.id != module.id]
        rest_ids = {m.id for m in rest}
        for candidate in self.catalog.by_category(module.category):
            if candidate.id == module.id or candidate.id in rest_ids:
                continue
            report = self.checker.check_all([*rest, candidate])
            clashes = [
                issue for issue in report.issues
                if issue.kind in _REPLACEABLE_KINDS and candidate.id in (issue.module, issue.other)
            ]
            if not clashes:
                return candidate
        return None
