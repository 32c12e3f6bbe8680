"""Compatibility checks for a candidate module against a proposed selection.

The base rules apply to every module.  Each category may contribute an extra
rule function through a rule table; its results are unioned with the base
rules.  Rules are pure: they only read the descriptors they are given.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence

from .models import CompatibilityReport, Issue, IssueKind, ModuleCategory, ModuleDescriptor


CategoryRule = Callable[[ModuleDescriptor, Sequence[ModuleDescriptor]], CompatibilityReport]


# ---------------------------------------------------------------------------
# Base rules
# ---------------------------------------------------------------------------


def base_rules(
    candidate: ModuleDescriptor,
    others: Sequence[ModuleDescriptor],
) -> CompatibilityReport:
    """Apply the rules shared by every module category.

    Args:
        candidate: The module being checked.
        others: Every other module in the proposed selection.

    Returns:
        A report with blocking ``issues`` and advisory ``warnings``.
    """
    issues: list[Issue] = []
    warnings: list[Issue] = []
    other_ids = {m.id for m in others}

    for conflict in candidate.incompatible_with:
        if conflict in other_ids:
            issues.append(Issue(
                kind=IssueKind.INCOMPATIBLE_PAIR,
                module=candidate.id,
                other=conflict,
                message=f"{candidate.id} is incompatible with {conflict}",
            ))

    for capability in candidate.requires:
        if not any(m.provides_capability(capability) for m in others):
            issues.append(Issue(
                kind=IssueKind.MISSING_REQUIREMENT,
                module=candidate.id,
                capability=capability,
                message=f"{candidate.id} requires '{capability}' but nothing selected provides it",
            ))

    for companion in candidate.compatible_with:
        if companion not in other_ids:
            warnings.append(Issue(
                kind=IssueKind.RECOMMENDED_MISSING,
                module=candidate.id,
                other=companion,
                blocking=False,
                message=f"{candidate.id} works best with {companion}",
            ))

    if candidate.exclusive_category:
        for module in others:
            if module.category == candidate.category:
                issues.append(Issue(
                    kind=IssueKind.MULTIPLE_EXCLUSIVE_PROVIDERS,
                    module=candidate.id,
                    other=module.id,
                    message=(
                        f"Only one {candidate.category.value} may be selected: "
                        f"{candidate.id} and {module.id}"
                    ),
                ))

    return CompatibilityReport(issues=tuple(issues), warnings=tuple(warnings))


# ---------------------------------------------------------------------------
# Category rules
# ---------------------------------------------------------------------------


def ui_library_rules(
    candidate: ModuleDescriptor,
    others: Sequence[ModuleDescriptor],
) -> CompatibilityReport:
    """A UI library must support the selected frontend framework."""
    issues: list[Issue] = []
    warnings: list[Issue] = []

    for module in others:
        if module.category == ModuleCategory.FRONTEND_FRAMEWORK:
            if candidate.compatible_frameworks and module.id not in candidate.compatible_frameworks:
                issues.append(Issue(
                    kind=IssueKind.INCOMPATIBLE_FRAMEWORK,
                    module=candidate.id,
                    other=module.id,
                    message=(
                        f"{candidate.id} supports {', '.join(candidate.compatible_frameworks)}, "
                        f"not {module.id}"
                    ),
                ))
        elif module.category == ModuleCategory.UI_LIBRARY:
            warnings.append(Issue(
                kind=IssueKind.MULTIPLE_UI_LIBRARIES,
                module=candidate.id,
                other=module.id,
                blocking=False,
                message=f"Multiple UI libraries selected: {candidate.id} and {module.id}",
            ))

    return CompatibilityReport(issues=tuple(issues), warnings=tuple(warnings))


def auth_provider_rules(
    candidate: ModuleDescriptor,
    others: Sequence[ModuleDescriptor],
) -> CompatibilityReport:
    warnings = [
        Issue(
            kind=IssueKind.AUTH_OVERLAP,
            module=candidate.id,
            other=module.id,
            blocking=False,
            message=f"{module.id} already provides auth; {candidate.id} duplicates it",
        )
        for module in others
        if module.category == ModuleCategory.BACKEND_SERVICE and "auth" in module.provides
    ]
    return CompatibilityReport(warnings=tuple(warnings))


def backend_framework_rules(
    candidate: ModuleDescriptor,
    others: Sequence[ModuleDescriptor],
) -> CompatibilityReport:
    if "orm" in candidate.provides and not any("database" in m.provides for m in others):
        return CompatibilityReport(warnings=(
            Issue(
                kind=IssueKind.MISSING_DATABASE,
                module=candidate.id,
                capability="database",
                blocking=False,
                message=f"{candidate.id} ships an ORM but no database module is selected",
            ),
        ))
    return CompatibilityReport()


DEFAULT_CATEGORY_RULES: dict[ModuleCategory, CategoryRule] = {
    ModuleCategory.UI_LIBRARY: ui_library_rules,
    ModuleCategory.AUTH_PROVIDER: auth_provider_rules,
    ModuleCategory.BACKEND_FRAMEWORK: backend_framework_rules,
}


# ---------------------------------------------------------------------------
# CompatibilityChecker
# ---------------------------------------------------------------------------


class CompatibilityChecker:
    """Checks a candidate module against a proposed module set.

    ``category_rules`` maps a category to an extra rule function.  Categories
    without an entry are checked with the base rules only.
    """

    def __init__(
        self,
        category_rules: Mapping[ModuleCategory, CategoryRule] | None = None,
    ) -> None:
        rules = DEFAULT_CATEGORY_RULES if category_rules is None else category_rules
        self.category_rules: dict[ModuleCategory, CategoryRule] = dict(rules)

    def check(
        self,
        candidate: ModuleDescriptor,
        proposed: Iterable[ModuleDescriptor],
    ) -> CompatibilityReport:
        """Return the blocking issues and warnings for *candidate* in *proposed*.

        *proposed* may or may not contain the candidate itself; it is never
        compared against itself.
        """
        others = [m for m in proposed if m.id != candidate.id]
        report = base_rules(candidate, others)
        rule = self.category_rules.get(candidate.category)
        if rule is not None:
            report = report.merged(rule(candidate, others))
        return report

    def check_all(self, proposed: Sequence[ModuleDescriptor]) -> CompatibilityReport:
        """Check every module of *proposed* against the rest of the set."""
        report = CompatibilityReport()
        for module in proposed:
            report = report.merged(self.check(module, proposed))
        return report
