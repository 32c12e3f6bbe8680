"""Merge planning: one merge strategy per output path.

The planner walks the resolved modules' file manifests in resolution order.
A path with a single contributor is always copied as-is.  A shared path gets
its strategy from, in order: a contributor's ``mergeOverrides`` glob, the
default rule table below, or a ``replace`` fallback that the composer
treats as a conflict.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Optional

from .models import (
    Contributor,
    MergePlan,
    MergeStrategy,
    ModuleDescriptor,
    PathPlan,
    StrategySource,
)


PathPredicate = Callable[[PurePosixPath], bool]
Rule = tuple[PathPredicate, MergeStrategy]


# ---------------------------------------------------------------------------
# Path predicates
# ---------------------------------------------------------------------------


def _named(*names: str) -> PathPredicate:
    return lambda path: path.name in names


def _has_segment(*segments: str) -> PathPredicate:
    """Match a directory segment or the file stem (``src/router.js``)."""
    return lambda path: any(s in path.parts[:-1] or path.stem == s for s in segments)


def _prefixed(prefix: str) -> PathPredicate:
    return lambda path: path.name.startswith(prefix)


def _eslintrc(path: PurePosixPath) -> bool:
    return path.name == ".eslintrc" or path.name.startswith(".eslintrc.")


DEFAULT_RULES: list[Rule] = [
    (_named("package.json", "tsconfig.json"), MergeStrategy.MERGE_JSON),
    (_named(".gitignore", ".env.example"), MergeStrategy.APPEND_UNIQUE),
    (_named("README.md"), MergeStrategy.REPLACE),
    (_has_segment("router"), MergeStrategy.MERGE_ROUTES),
    (_has_segment("store", "stores"), MergeStrategy.MERGE_STORES),
    (_prefixed("main."), MergeStrategy.MERGE_ENTRY),
    (_eslintrc, MergeStrategy.MERGE_ESLINT),
    (_prefixed("vite.config."), MergeStrategy.MERGE_VITE_CONFIG),
]


# ---------------------------------------------------------------------------
# Glob matching for mergeOverrides
# ---------------------------------------------------------------------------


@lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> re.Pattern[str]:
    """Translate a path glob into a regex.

    ``**/`` matches zero or more directories, ``**`` matches anything,
    ``*`` matches within one segment and ``?`` matches one non-``/`` char.
    """
    out: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out) + r"\Z")


def glob_match(pattern: str, path: str) -> bool:
    return _glob_regex(pattern).match(path) is not None


# ---------------------------------------------------------------------------
# MergePlanner
# ---------------------------------------------------------------------------


class MergePlanner:
    """Computes a :class:`MergePlan` from resolved modules.

    Args:
        rules: Ordered ``(predicate, strategy)`` pairs evaluated first-match
            wins for shared paths.  Defaults to :data:`DEFAULT_RULES`.
    """

    def __init__(self, rules: Optional[Sequence[Rule]] = None) -> None:
        self.rules: list[Rule] = list(DEFAULT_RULES if rules is None else rules)

    def plan(self, modules: Sequence[ModuleDescriptor]) -> MergePlan:
        """Build the plan for *modules*, which must be in resolution order."""
        contributors: dict[str, list[Contributor]] = {}
        by_id = {m.id: m for m in modules}
        for module in modules:
            for entry in module.file_manifest:
                contributors.setdefault(entry.path, []).append(
                    Contributor(module_id=module.id, is_template=entry.is_template)
                )

        entries: dict[str, PathPlan] = {}
        for path, contribs in contributors.items():
            if len(contribs) == 1:
                strategy, source = MergeStrategy.REPLACE, StrategySource.SINGLE
            else:
                strategy, source = self.strategy_for(
                    path, [by_id[c.module_id] for c in contribs]
                )
            entries[path] = PathPlan(
                path=path, strategy=strategy, source=source, contributors=tuple(contribs)
            )
        return MergePlan(entries=entries)

    def strategy_for(
        self,
        path: str,
        contributors: Sequence[ModuleDescriptor],
    ) -> tuple[MergeStrategy, StrategySource]:
        """Strategy for a path shared by *contributors* (in resolution order)."""
        for module in contributors:
            for pattern, strategy in module.merge_overrides:
                if glob_match(pattern, path):
                    return strategy, StrategySource.OVERRIDE

        posix = PurePosixPath(path)
        for predicate, strategy in self.rules:
            if predicate(posix):
                return strategy, StrategySource.DEFAULT

        return MergeStrategy.REPLACE, StrategySource.FALLBACK
