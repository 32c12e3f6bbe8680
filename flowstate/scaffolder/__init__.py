"""flowstate scaffolder -- turns a module selection into a project directory.

Quick usage::

    from flowstate.modules import ModuleCatalog
    from flowstate.scaffolder import ProjectGenerator

    generator = ProjectGenerator(ModuleCatalog.load_builtin())
    report = await generator.generate("My App", ["vue-base", "vuetify"], "/tmp/output")
"""

from flowstate.scaffolder.generator import GenerationReport, ProjectGenerator, ResolutionFailed
from flowstate.scaffolder.templates import (
    ContentNotFoundError,
    ModuleTemplateProvider,
    StaticContentProvider,
)
from flowstate.scaffolder.writer import FileSetWriter, WriterError

__all__ = [
    "ContentNotFoundError",
    "FileSetWriter",
    "GenerationReport",
    "ModuleTemplateProvider",
    "ProjectGenerator",
    "ResolutionFailed",
    "StaticContentProvider",
    "WriterError",
]
