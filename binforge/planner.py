"""Build planner — decides which targets to build and in what order.

Resolution runs in three steps:

1. ``resolve_targets_to_build`` picks the root targets for the run mode.
2. ``resolve_build_unit`` expands each root into its transitive closure
   of buildable targets.
3. ``resolve_build_order`` deduplicates the union, wires unit-to-unit
   edges and sorts them so dependencies come first.

Planning is pure computation: it never touches the filesystem and never
suspends.
"""

from __future__ import annotations

import enum
import logging
from typing import Iterator

from pydantic import BaseModel, ConfigDict

from binforge.errors import CycleDetected, PackageNotDefined, UnsupportedTargetKind
from binforge.graph import Package, PackageGraph, Target, TargetKey, TargetKind

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class RunMode(str, enum.Enum):
    """Whether the root package's own targets are build roots."""

    CREATE_PACKAGE = "createPackage"
    PREPARE_DEPENDENCIES = "prepareDependencies"


class BundleType(str, enum.Enum):
    """What a buildable target turns into inside its bundle."""

    FRAMEWORK = "framework"
    COMMAND_LINE_TOOL = "commandLineTool"


# Never scheduled: no code of their own to ship, or already prebuilt.
EXCLUDED_KINDS: frozenset[TargetKind] = frozenset({
    TargetKind.SYSTEM_MODULE,
    TargetKind.TEST,
    TargetKind.BINARY,
})

_BUNDLE_TYPES: dict[TargetKind, BundleType] = {
    TargetKind.LIBRARY: BundleType.FRAMEWORK,
    TargetKind.EXECUTABLE: BundleType.COMMAND_LINE_TOOL,
    TargetKind.SNIPPET: BundleType.COMMAND_LINE_TOOL,
}

BUNDLE_EXTENSION = "xcframework"


class BuildUnit(BaseModel):
    """One schedulable build: a (package, target) pair.

    Only the planner creates these.  Identity is ``(package, target)``.
    """

    model_config = ConfigDict(frozen=True)

    package: str
    package_name: str
    target: str
    kind: TargetKind
    bundle_type: BundleType

    @property
    def identity(self) -> TargetKey:
        return TargetKey(self.package, self.target)

    @property
    def bundle_name(self) -> str:
        return f"{self.target}.{BUNDLE_EXTENSION}"

    def __repr__(self) -> str:
        return f"BuildUnit({self.package}/{self.target}, kind={self.kind.value!r})"


def bundle_type_for(target: Target) -> BundleType:
    """Map a buildable target to its bundle type.

    Raises :class:`UnsupportedTargetKind` for kinds with no mapping.
    """
    try:
        return _BUNDLE_TYPES[target.kind]
    except KeyError:
        raise UnsupportedTargetKind(target.kind.value, target=str(target.key)) from None


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class BuildPlanner:
    """Resolves a :class:`PackageGraph` into an ordered list of build units."""

    __slots__ = ("graph", "mode")

    def __init__(self, graph: PackageGraph, mode: RunMode) -> None:
        self.graph = graph
        self.mode = mode

    # -- roots ---------------------------------------------------------------

    def root_package(self) -> Package:
        """Return the first root package.

        Raises :class:`PackageNotDefined` if the graph has none.
        """
        roots = self.graph.root_packages
        if not roots:
            raise PackageNotDefined()
        return roots[0]

    def resolve_targets_to_build(self) -> list[Target]:
        """Root targets for the current mode.

        createPackage: member targets of every product of the root package.
        prepareDependencies: every target of the root package, which is only
        a container for its dependencies.
        """
        root = self.root_package()
        if self.mode is RunMode.CREATE_PACKAGE:
            candidates = [
                target
                for product in self.graph.products_of_package(root)
                for target in self.graph.targets_of(product)
            ]
        else:
            candidates = self.graph.targets_of_package(root)
        return _unique(candidates)

    # -- closure -------------------------------------------------------------

    def resolve_build_unit(self, root_target: Target) -> list[BuildUnit]:
        """Buildable closure of *root_target*, deduplicated.

        The root itself is included in createPackage mode only.
        """
        candidates = self.graph.recursive_target_dependencies(root_target)
        if self.mode is RunMode.CREATE_PACKAGE:
            candidates = [root_target, *candidates]

        units: dict[TargetKey, BuildUnit] = {}
        for target in candidates:
            if target.kind in EXCLUDED_KINDS:
                continue
            units[target.key] = self._to_unit(target)
        return list(units.values())

    # -- order ---------------------------------------------------------------

    def resolve_build_order(self) -> list[BuildUnit]:
        """Every unit to build, dependencies first.

        Raises :class:`CycleDetected` if the units depend on each other
        cyclically.
        """
        units: dict[TargetKey, BuildUnit] = {}
        for target in self.resolve_targets_to_build():
            for unit in self.resolve_build_unit(target):
                units[unit.identity] = unit

        self._warn_on_bundle_collisions(units.values())

        edges = {
            key: self._unit_dependencies(self.graph.target(key), units)
            for key in units
        }
        order = [units[key] for key in _topological_order(list(units), edges)]

        logger.info(
            "[planner] mode=%s resolved %d build unit(s): %s",
            self.mode.value,
            len(order),
            ", ".join(u.target for u in order) or "-",
        )
        return order

    # -- internals -----------------------------------------------------------

    def _to_unit(self, target: Target) -> BuildUnit:
        package = self.graph.package_of(target)
        return BuildUnit(
            package=package.identity,
            package_name=package.name,
            target=target.name,
            kind=target.kind,
            bundle_type=bundle_type_for(target),
        )

    def _unit_dependencies(
        self, target: Target, units: dict[TargetKey, BuildUnit]
    ) -> list[TargetKey]:
        """Units *target* depends on.

        Targets that are not units themselves (excluded kinds) are walked
        through so their own dependencies still count.
        """
        result: list[TargetKey] = []
        passed: set[TargetKey] = set()
        stack = list(reversed(self.graph.direct_target_dependencies(target)))
        while stack:
            dep = stack.pop()
            if dep.key in units:
                if dep.key not in result:
                    result.append(dep.key)
                continue
            if dep.key in passed:
                continue
            passed.add(dep.key)
            stack.extend(reversed(self.graph.direct_target_dependencies(dep)))
        return result

    def _warn_on_bundle_collisions(self, units) -> None:
        owners: dict[str, str] = {}
        for unit in units:
            other = owners.setdefault(unit.bundle_name, unit.package)
            if other != unit.package:
                logger.warning(
                    "[planner] %s is produced by both '%s' and '%s'; "
                    "the later build replaces the earlier bundle",
                    unit.bundle_name,
                    other,
                    unit.package,
                )


def _topological_order(
    nodes: list[TargetKey], edges: dict[TargetKey, list[TargetKey]]
) -> list[TargetKey]:
    """Depth-first post-order: every node after all of its dependencies.

    Iterative, so dependency chains of any length are fine.
    Raises :class:`CycleDetected` on a back edge.
    """
    visited: set[TargetKey] = set()
    temp: set[TargetKey] = set()
    order: list[TargetKey] = []

    for start in nodes:
        if start in visited:
            continue
        temp.add(start)
        stack: list[tuple[TargetKey, Iterator[TargetKey]]] = [
            (start, iter(edges.get(start, [])))
        ]
        while stack:
            key, pending = stack[-1]
            dep = next(pending, None)
            if dep is None:
                stack.pop()
                temp.discard(key)
                visited.add(key)
                order.append(key)
            elif dep in temp:
                raise CycleDetected(str(dep))
            elif dep not in visited:
                temp.add(dep)
                stack.append((dep, iter(edges.get(dep, []))))
    return order


def _unique(targets: list[Target]) -> list[Target]:
    seen: set[TargetKey] = set()
    result: list[Target] = []
    for target in targets:
        if target.key not in seen:
            seen.add(target.key)
            result.append(target)
    return result


__all__ = [
    "BUNDLE_EXTENSION",
    "BuildPlanner",
    "BuildUnit",
    "BundleType",
    "EXCLUDED_KINDS",
    "RunMode",
    "bundle_type_for",
]
