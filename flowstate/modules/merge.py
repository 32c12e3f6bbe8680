"""Merge functions, one per merge strategy tag.

Every function takes the contributions to one path, in resolution order,
and returns the merged text.  Later contributions take precedence.  The
functions are pure; malformed input raises :class:`MergeError`.

Marker-spliced strategies (routes, stores, entry files, vite config) work
on a *skeleton* and *fragments*.  The skeleton is an ordinary file holding
slot markers such as::

    // @flowstate:imports

A fragment consists only of slot sections: a marker line followed by the
lines to insert at that slot in the skeleton.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from typing import Any, NamedTuple

import yaml

from .models import MergeStrategy


# ---------------------------------------------------------------------------
# Errors and inputs
# ---------------------------------------------------------------------------


class CompositionError(Exception):
    """Raised when composing a file set fails.  Nothing is produced."""

    def __init__(self, message: str, path: str = "") -> None:
        self.reason = message
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class MergeError(CompositionError):
    """Raised when contributions to a path cannot be merged."""


class Contribution(NamedTuple):
    """Substituted content of one module for one path."""

    module_id: str
    content: str


MergeFunction = Callable[[Sequence[Contribution]], str]


def _with_newline(text: str) -> str:
    return text if not text or text.endswith("\n") else text + "\n"


# ---------------------------------------------------------------------------
# Text strategies
# ---------------------------------------------------------------------------


def merge_replace(contributions: Sequence[Contribution]) -> str:
    return contributions[-1].content


def merge_append(contributions: Sequence[Contribution]) -> str:
    return "".join(_with_newline(c.content) for c in contributions)


def merge_prepend(contributions: Sequence[Contribution]) -> str:
    return "".join(_with_newline(c.content) for c in reversed(contributions))


def merge_append_unique(contributions: Sequence[Contribution]) -> str:
    """Concatenate line by line, dropping non-blank lines already emitted."""
    seen: set[str] = set()
    lines: list[str] = []
    for contribution in contributions:
        for line in contribution.content.splitlines():
            key = line.strip()
            if key:
                if key in seen:
                    continue
                seen.add(key)
            elif not lines or not lines[-1].strip():
                continue
            lines.append(line.rstrip())
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines) + "\n" if lines else ""


_ENV_KEY = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=")


def merge_env(contributions: Sequence[Contribution]) -> str:
    """Merge dotenv files under per-module headers.

    A key defined by an earlier module is kept; later definitions of it are
    commented out.
    """
    seen: set[str] = set()
    lines: list[str] = []
    for index, contribution in enumerate(contributions):
        if index:
            lines.append("")
        lines.append(f"# {contribution.module_id.upper()} Configuration")
        lines.append("# " + "=" * 30)
        for line in contribution.content.splitlines():
            match = _ENV_KEY.match(line)
            if match is None:
                lines.append(line)
            elif match.group(1) in seen:
                lines.append(f"# {line} # Duplicate from {contribution.module_id}")
            else:
                seen.add(match.group(1))
                lines.append(line)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Structured strategies
# ---------------------------------------------------------------------------


def _union(items: list[Any]) -> list[Any]:
    """De-duplicate a list by deep equality, keeping first occurrences."""
    seen: set[str] = set()
    result = []
    for item in items:
        try:
            key = json.dumps(item, sort_keys=True)
        except TypeError:
            # YAML dates and mixed-type keys have no JSON form.
            if item not in result:
                result.append(item)
            continue
        if key not in seen:
            seen.add(key)
            result.append(item)
    return result


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*.

    Nested objects are merged, arrays are concatenated and de-duplicated,
    anything else (including type mismatches) is taken from *override*.
    """
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            result[key] = _union(current + value)
        else:
            result[key] = value
    return result


def _load_json(contribution: Contribution) -> dict[str, Any]:
    try:
        data = json.loads(contribution.content)
    except json.JSONDecodeError as exc:
        raise MergeError(f"invalid JSON from {contribution.module_id}: {exc}") from exc
    if not isinstance(data, dict):
        raise MergeError(f"expected a JSON object from {contribution.module_id}")
    return data


def _dump_json(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def merge_json(contributions: Sequence[Contribution]) -> str:
    merged: dict[str, Any] = {}
    for contribution in contributions:
        merged = deep_merge(merged, _load_json(contribution))
    return _dump_json(merged)


def merge_json_shallow(contributions: Sequence[Contribution]) -> str:
    """Replace top-level keys wholesale; top-level arrays are unioned."""
    merged: dict[str, Any] = {}
    for contribution in contributions:
        for key, value in _load_json(contribution).items():
            current = merged.get(key)
            if isinstance(current, list) and isinstance(value, list):
                merged[key] = _union(current + value)
            else:
                merged[key] = value
    return _dump_json(merged)


_CHAINED_SCRIPTS = ("build", "test", "dev", "start")
_SORTED_SECTIONS = ("dependencies", "devDependencies", "peerDependencies", "scripts")


def merge_package(contributions: Sequence[Contribution]) -> str:
    """Merge ``package.json`` files.

    Same as :func:`merge_json` except for scripts: when a later module
    defines a script that already exists with a different command, its
    version is kept as ``<module>:<script>``.  For build, test, dev and
    start a ``<script>:all`` script runs every variant in order.
    Dependency and script maps are sorted by key.
    """
    merged: dict[str, Any] = {}
    scripts: dict[str, str] = {}
    for contribution in contributions:
        package = _load_json(contribution)
        incoming = package.pop("scripts", {}) or {}
        merged = deep_merge(merged, package)
        for name, command in incoming.items():
            if name in scripts and scripts[name] != command:
                prefixed = f"{contribution.module_id}:{name}"
                scripts[prefixed] = command
                if name in _CHAINED_SCRIPTS:
                    chained = scripts.setdefault(f"{name}:all", scripts[name])
                    scripts[f"{name}:all"] = f"{chained} && npm run {prefixed}"
            else:
                scripts[name] = command
    if scripts:
        merged["scripts"] = scripts
    for section in _SORTED_SECTIONS:
        if isinstance(merged.get(section), dict):
            merged[section] = dict(sorted(merged[section].items()))
    return _dump_json(merged)


def merge_yaml(contributions: Sequence[Contribution]) -> str:
    merged: dict[str, Any] = {}
    for contribution in contributions:
        try:
            data = yaml.safe_load(contribution.content)
        except yaml.YAMLError as exc:
            raise MergeError(f"invalid YAML from {contribution.module_id}: {exc}") from exc
        if data is None:
            continue
        if not isinstance(data, dict):
            raise MergeError(f"expected a YAML mapping from {contribution.module_id}")
        merged = deep_merge(merged, data)
    return yaml.safe_dump(merged, sort_keys=False, default_flow_style=False)


# ---------------------------------------------------------------------------
# Marker splicing
# ---------------------------------------------------------------------------


MARKER_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?://|#|/\*|<!--)\s*@flowstate:(?P<slot>[A-Za-z0-9_-]+)\s*(?:\*/|-->)?\s*$"
)


def _marker(line: str) -> re.Match[str] | None:
    return MARKER_RE.match(line)


def is_fragment(content: str) -> bool:
    """A fragment's first non-blank line is a slot marker."""
    for line in content.splitlines():
        if line.strip():
            return _marker(line) is not None
    return False


def strip_markers(content: str) -> str:
    """Remove slot marker lines from *content*."""
    if "@flowstate:" not in content:
        return content
    kept = [line for line in content.splitlines(keepends=True) if not _marker(line.rstrip("\r\n"))]
    return "".join(kept)


def _fragment_blocks(contribution: Contribution) -> list[tuple[str, list[str]]]:
    blocks: list[tuple[str, list[str]]] = []
    for line in contribution.content.splitlines():
        match = _marker(line)
        if match:
            blocks.append((match.group("slot"), []))
        elif blocks:
            blocks[-1][1].append(line.rstrip())
    trimmed = []
    for slot, lines in blocks:
        while lines and not lines[0].strip():
            lines.pop(0)
        while lines and not lines[-1].strip():
            lines.pop()
        if lines:
            trimmed.append((slot, lines))
    return trimmed


def splice_fragments(contributions: Sequence[Contribution]) -> str:
    """Insert every fragment's slot sections at the skeleton's markers.

    Sections are inserted in contribution order, indented like the marker.
    A section identical to one already inserted at the same slot is
    dropped.  Marker lines do not appear in the output.
    """
    skeletons = [c for c in contributions if not is_fragment(c.content)]
    if len(skeletons) != 1:
        found = ", ".join(c.module_id for c in skeletons) or "none"
        raise MergeError(f"expected exactly one skeleton, found {found}")
    skeleton = skeletons[0]

    skeleton_lines = skeleton.content.splitlines()
    slots = {}
    for line in skeleton_lines:
        match = _marker(line)
        if match:
            slots.setdefault(match.group("slot"), match.group("indent"))

    inserts: dict[str, list[list[str]]] = {slot: [] for slot in slots}
    for contribution in contributions:
        if contribution is skeleton:
            continue
        for slot, lines in _fragment_blocks(contribution):
            if slot not in slots:
                raise MergeError(
                    f"{contribution.module_id} targets slot '{slot}' "
                    f"which {skeleton.module_id} does not define"
                )
            key = [line.strip() for line in lines]
            if any([line.strip() for line in block] == key for block in inserts[slot]):
                continue
            inserts[slot].append(lines)

    output: list[str] = []
    emitted: set[str] = set()
    for line in skeleton_lines:
        match = _marker(line)
        if match is None:
            output.append(line)
            continue
        slot = match.group("slot")
        if slot in emitted:
            continue
        emitted.add(slot)
        indent = slots[slot]
        for block in inserts[slot]:
            output.extend(indent + text if text else text for text in block)

    text = "\n".join(output)
    return text + "\n" if skeleton.content.endswith("\n") else text


def merge_eslint(contributions: Sequence[Contribution]) -> str:
    """JSON deep merge when every contribution is a JSON object, else splice."""
    try:
        objects = [_load_json(c) for c in contributions]
    except MergeError:
        return splice_fragments(contributions)
    merged: dict[str, Any] = {}
    for data in objects:
        merged = deep_merge(merged, data)
    return _dump_json(merged)


MERGE_FUNCTIONS: dict[MergeStrategy, MergeFunction] = {
    MergeStrategy.REPLACE: merge_replace,
    MergeStrategy.APPEND: merge_append,
    MergeStrategy.APPEND_UNIQUE: merge_append_unique,
    MergeStrategy.PREPEND: merge_prepend,
    MergeStrategy.MERGE_JSON: merge_json,
    MergeStrategy.MERGE_JSON_SHALLOW: merge_json_shallow,
    MergeStrategy.MERGE_PACKAGE: merge_package,
    MergeStrategy.MERGE_YAML: merge_yaml,
    MergeStrategy.MERGE_ENV: merge_env,
    MergeStrategy.MERGE_ROUTES: splice_fragments,
    MergeStrategy.MERGE_STORES: splice_fragments,
    MergeStrategy.MERGE_ENTRY: splice_fragments,
    MergeStrategy.MERGE_ESLINT: merge_eslint,
    MergeStrategy.MERGE_VITE_CONFIG: splice_fragments,
}
