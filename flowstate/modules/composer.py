"""Template composition: turn a merge plan into an in-memory file set.

For every planned path the composer fetches each contributor's raw content
from a content provider, substitutes template variables, and applies the
path's merge function.  All paths are computed before anything is returned;
the first failure aborts the whole composition and no partial file set is
produced.  Composition is a pure function of the plan, the provider's
content, and the context, so composing twice yields identical bytes.
"""

from __future__ import annotations

import asyncio
import inspect
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Optional, Union

from .merge import (
    MERGE_FUNCTIONS,
    CompositionError,
    Contribution,
    MergeError,
    strip_markers,
)
from .models import FileSet, MergePlan, MergeStrategy, PathPlan

__all__ = [
    "CompositionError",
    "ContentProvider",
    "MergeError",
    "MergeStrategyConflict",
    "TemplateComposer",
    "substitute_variables",
]


RawContent = Union[str, bytes]
ContentProvider = Callable[[str, str], Union[RawContent, Awaitable[RawContent]]]


class MergeStrategyConflict(CompositionError):
    """Several modules contribute a path that no rule knows how to merge."""

    def __init__(self, path: str, contributors: Sequence[str]) -> None:
        self.contributors = tuple(contributors)
        super().__init__(
            f"contributed by {', '.join(self.contributors)} with no merge rule; "
            f"add a mergeOverrides entry for this path",
            path=path,
        )


# ---------------------------------------------------------------------------
# Variable substitution
# ---------------------------------------------------------------------------

_VARIABLE_RE = re.compile(
    r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}"
    r"|\[([A-Za-z_][A-Za-z0-9_]*)\]"
    r"|__([A-Za-z][A-Za-z0-9_]*?)__"
)


def substitute_variables(content: str, context: Mapping[str, str]) -> str:
    """Replace ``{{VAR}}``, ``[VAR]`` and ``__VAR__`` placeholders.

    Substitution is a single pass, so values are never re-scanned.  Names
    missing from *context* are left exactly as written.

    Examples::

        substitute_variables("{{ PROJECT_NAME }}", {"PROJECT_NAME": "demo"}) -> "demo"
        substitute_variables("[UNKNOWN]", {}) -> "[UNKNOWN]"
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2) or match.group(3)
        if name in context:
            return str(context[name])
        return match.group(0)

    return _VARIABLE_RE.sub(_replace, content)


# ---------------------------------------------------------------------------
# TemplateComposer
# ---------------------------------------------------------------------------


class TemplateComposer:
    """Executes a :class:`MergePlan`.

    Args:
        strict: When ``True`` (default), a path shared by several modules
            without an override or default rule raises
            :class:`MergeStrategyConflict`.  When ``False`` the last
            contributor wins; such paths are listed by
            ``plan.fallback_conflicts()``.
        max_parallel: Upper bound on concurrent content fetches.
    """

    def __init__(self, strict: bool = True, max_parallel: int = 8) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.strict = strict
        self.max_parallel = max_parallel

    async def compose(
        self,
        plan: MergePlan,
        provider: ContentProvider,
        context: Optional[Mapping[str, str]] = None,
    ) -> FileSet:
        """Compose every path of *plan*.

        Args:
            plan: The merge plan to execute.
            provider: ``provider(module_id, path)`` returning ``str`` or
                ``bytes``; may be a plain function or a coroutine function.
            context: Template variables for substitution.

        Returns:
            Mapping of path to final bytes, in plan order.

        Raises:
            CompositionError: On the first failing path.  Nothing is returned.
        """
        context = dict(context or {})
        if self.strict:
            conflicts = plan.fallback_conflicts()
            if conflicts:
                raise MergeStrategyConflict(conflicts[0].path, conflicts[0].contributor_ids)

        semaphore = asyncio.Semaphore(self.max_parallel)
        tasks = [
            asyncio.create_task(self._compose_path(entry, provider, context, semaphore))
            for entry in plan.values()
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return dict(zip(plan.paths(), results))

    def compose_sync(
        self,
        plan: MergePlan,
        provider: ContentProvider,
        context: Optional[Mapping[str, str]] = None,
    ) -> FileSet:
        """Blocking wrapper around :meth:`compose`."""
        return asyncio.run(self.compose(plan, provider, context))

    # -- Per-path work -------------------------------------------------------

    async def _fetch(
        self,
        provider: ContentProvider,
        module_id: str,
        path: str,
        semaphore: asyncio.Semaphore,
    ) -> RawContent:
        async with semaphore:
            try:
                if inspect.iscoroutinefunction(provider):
                    raw = await provider(module_id, path)
                else:
                    raw = await asyncio.to_thread(provider, module_id, path)
                    if inspect.isawaitable(raw):
                        raw = await raw
            except CompositionError:
                raise
            except Exception as exc:
                raise CompositionError(
                    f"could not fetch content from {module_id}: {exc}", path=path
                ) from exc
        if not isinstance(raw, (str, bytes)):
            raise CompositionError(
                f"content from {module_id} must be str or bytes, got {type(raw).__name__}",
                path=path,
            )
        return raw

    async def _compose_path(
        self,
        entry: PathPlan,
        provider: ContentProvider,
        context: dict[str, str],
        semaphore: asyncio.Semaphore,
    ) -> bytes:
        raws = await asyncio.gather(*(
            self._fetch(provider, contributor.module_id, entry.path, semaphore)
            for contributor in entry.contributors
        ))

        contributions: list[Contribution] = []
        for contributor, raw in zip(entry.contributors, raws):
            if isinstance(raw, bytes):
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError:
                    if entry.strategy != MergeStrategy.REPLACE:
                        raise CompositionError(
                            f"binary content from {contributor.module_id} cannot be merged "
                            f"with strategy {entry.strategy.value}",
                            path=entry.path,
                        ) from None
                    if contributor is entry.contributors[-1]:
                        return raw
                    continue
            else:
                text = raw
            if contributor.is_template:
                local = context if "MODULE_NAME" in context else {
                    **context, "MODULE_NAME": contributor.module_id,
                }
                text = substitute_variables(text, local)
            contributions.append(Contribution(contributor.module_id, text))

        merge = MERGE_FUNCTIONS[entry.strategy]
        try:
            merged = merge(contributions)
        except MergeError as exc:
            raise MergeError(exc.reason, path=entry.path) from exc
        if entry.strategy == MergeStrategy.REPLACE:
            merged = strip_markers(merged)
        return merged.encode("utf-8")
