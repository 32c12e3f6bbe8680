"""Content providers backed by per-module template files.

Templates live under ``flowstate/scaffolder/templates/<module id>/``.  A
manifest path ``src/main.js`` is served from ``<module id>/src/main.js.j2``
(rendered with Jinja2) when that exists, otherwise from the plain file
``<module id>/src/main.js`` as raw bytes.

Jinja2 rendering uses ``DebugUndefined`` so placeholders such as
``{{ PROJECT_NAME }}`` that the render context does not define survive
rendering and are substituted later by the composer.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from jinja2 import DebugUndefined, Environment, FileSystemLoader, select_autoescape


# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"

TEMPLATE_SUFFIX = ".j2"


class ContentNotFoundError(LookupError):
    """Raised when a module has no content for a manifest path."""

    def __init__(self, module_id: str, path: str) -> None:
        self.module_id = module_id
        self.path = path
        super().__init__(f"No template for {module_id}:{path}")


# ---------------------------------------------------------------------------
# ModuleTemplateProvider
# ---------------------------------------------------------------------------


class ModuleTemplateProvider:
    """Serves module file contents from a template directory.

    Instances are callable as ``provider(module_id, path)`` so they can be
    handed straight to :meth:`TemplateComposer.compose`.

    Args:
        template_dir: Root holding one sub-directory per module id.
        render_context: Variables available inside ``.j2`` templates.
    """

    def __init__(
        self,
        template_dir: str | Path | None = None,
        render_context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.render_context: dict[str, Any] = dict(render_context or {})
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            undefined=DebugUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def __call__(self, module_id: str, path: str) -> Union[str, bytes]:
        return self.get(module_id, path)

    def get(self, module_id: str, path: str) -> Union[str, bytes]:
        """Return rendered text for a ``.j2`` template, else the raw file bytes.

        Raises:
            ContentNotFoundError: If the module has neither file.
        """
        template_key = f"{module_id}/{path}{TEMPLATE_SUFFIX}"
        if (self.template_dir / template_key).is_file():
            return self.render(template_key, self.render_context)

        plain = self.template_dir / module_id / path
        if plain.is_file():
            return plain.read_bytes()

        raise ContentNotFoundError(module_id, path)

    def render(self, template_path: str, context: Mapping[str, Any]) -> str:
        """Render a single template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"vue-base/src/main.js.j2"``).
            context: Dictionary of variables available inside the template.
        """
        template = self.env.get_template(template_path)
        return template.render(**context)


class StaticContentProvider:
    """In-memory provider keyed by ``(module_id, path)``."""

    def __init__(self, contents: Mapping[tuple[str, str], Union[str, bytes]]) -> None:
        self.contents = dict(contents)

    def __call__(self, module_id: str, path: str) -> Union[str, bytes]:
        try:
            return self.contents[(module_id, path)]
        except KeyError:
            raise ContentNotFoundError(module_id, path) from None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def slugify(value: str) -> str:
    """Convert a string to a package/filename-safe slug.

    Examples::

        slugify("My Cool App") -> "my-cool-app"
        slugify("  Ünïcode & Co ") -> "n-code-co"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")
