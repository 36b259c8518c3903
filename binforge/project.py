"""Project emitter — a neutral project description for the ordered units.

Consumes the build order plus per-target source listings and produces a
``ProjectDescription``: one entry per unit (sorted by name) with its
product type, product path, info-plist name, sources, target
dependencies and link references.  Only library targets link their
dependencies.

The description is written as JSON; native IDE project formats are out
of scope.
"""

from __future__ import annotations

import enum
import json
import os
import tempfile
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field

from binforge.config import BuildOptions
from binforge.errors import PackageNotDefined, UnsupportedTargetKind
from binforge.graph import PackageGraph, Target, TargetKind
from binforge.planner import BuildUnit


class ProductType(str, enum.Enum):
    FRAMEWORK = "framework"
    COMMAND_LINE_TOOL = "commandLineTool"
    UNIT_TEST_BUNDLE = "unitTestBundle"


_PRODUCT_TYPES: dict[TargetKind, ProductType] = {
    TargetKind.LIBRARY: ProductType.FRAMEWORK,
    TargetKind.EXECUTABLE: ProductType.COMMAND_LINE_TOOL,
    TargetKind.SNIPPET: ProductType.COMMAND_LINE_TOOL,
    TargetKind.TEST: ProductType.UNIT_TEST_BUNDLE,
}


def product_type_for(target: Target) -> ProductType:
    """Raises :class:`UnsupportedTargetKind` for binary, systemModule and plugin."""
    try:
        return _PRODUCT_TYPES[target.kind]
    except KeyError:
        raise UnsupportedTargetKind(target.kind.value, target=str(target.key)) from None


def product_path_for(target: Target) -> str:
    product_type = product_type_for(target)
    if product_type is ProductType.FRAMEWORK:
        return f"{target.c99name}.framework"
    if product_type is ProductType.UNIT_TEST_BUNDLE:
        return f"{target.c99name}.xctest"
    return target.name


class ProjectTarget(BaseModel):
    """One native target in the project description."""

    model_config = ConfigDict(frozen=True)

    name: str
    package: str
    product_type: ProductType
    product_path: str
    info_plist: str
    sources: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    link: list[str] = Field(default_factory=list)


class ProjectDescription(BaseModel):
    """The whole project: build settings shared by every target plus the targets."""

    model_config = ConfigDict(frozen=True)

    name: str
    source_root: str
    default_configuration: str
    framework_type: str
    embed_debug_symbols: bool
    targets: list[ProjectTarget] = Field(default_factory=list)


class ProjectEmitter:
    """Builds (and writes) the project description for a build order."""

    __slots__ = ("graph", "options")

    def __init__(self, graph: PackageGraph, options: BuildOptions) -> None:
        self.graph = graph
        self.options = options

    def describe(self, order: Sequence[BuildUnit]) -> ProjectDescription:
        roots = self.graph.root_packages
        if not roots:
            raise PackageNotDefined()
        root = roots[0]

        members = {unit.identity for unit in order}
        targets = [self.graph.target(unit.identity) for unit in order]
        entries: list[ProjectTarget] = []
        for target in sorted(targets, key=lambda t: (t.name, t.package)):
            deps = [
                d for d in self.graph.recursive_target_dependencies(target)
                if d.key in members
            ]
            entries.append(
                ProjectTarget(
                    name=target.c99name,
                    package=target.package,
                    product_type=product_type_for(target),
                    product_path=product_path_for(target),
                    info_plist=f"{target.c99name}_Info.plist",
                    sources=self._source_paths(target),
                    dependencies=[d.c99name for d in deps],
                    link=(
                        [product_path_for(d) for d in deps]
                        if target.kind is TargetKind.LIBRARY
                        else []
                    ),
                )
            )

        return ProjectDescription(
            name=root.name,
            source_root=root.path,
            default_configuration=self.options.build_configuration.settings_value,
            framework_type=self.options.framework_type.value,
            embed_debug_symbols=self.options.embed_debug_symbols,
            targets=entries,
        )

    def write(self, order: Sequence[BuildUnit], path: str | Path) -> Path:
        """Write the description for *order* to *path* atomically."""
        description = self.describe(order)
        dest = Path(path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(description.model_dump(mode="json"), fh, indent=2)
                fh.write("\n")
            os.replace(tmp, dest)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return dest

    def _source_paths(self, target: Target) -> list[str]:
        package = self.graph.package_of(target)
        base = Path(target.path) if target.path else Path("Sources") / target.name
        if not base.is_absolute() and package.path:
            base = Path(package.path) / base
        return [str(base / src) for src in target.sources]


__all__ = [
    "ProductType",
    "ProjectDescription",
    "ProjectEmitter",
    "ProjectTarget",
    "product_path_for",
    "product_type_for",
]
