"""Package graph — packages, targets, products and dependency edges.

The graph is supplied by an external package-graph provider (as a JSON
dump) and is read-only for a run.  Entities live in flat tables keyed by
stable identifiers; edges are id-pairs, never owning references:

- packages keyed by identity
- targets keyed by :class:`TargetKey` ``(package, name)``
- products keyed by :class:`ProductKey` ``(package, name)``

All models are frozen (immutable after creation).
"""

from __future__ import annotations

import enum
import json
from pathlib import Path
from typing import Any, Iterable, NamedTuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from binforge.errors import GraphLoadError, UnknownProduct, UnknownTarget
from binforge.platforms import Platform


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class TargetKey(NamedTuple):
    """Stable identity of a target: owning package identity + target name."""

    package: str
    name: str

    def __str__(self) -> str:
        return f"{self.package}/{self.name}"


class ProductKey(NamedTuple):
    """Stable identity of a product: owning package identity + product name."""

    package: str
    name: str

    def __str__(self) -> str:
        return f"{self.package}/{self.name}"


def c99name(name: str) -> str:
    """Name usable as a C identifier (module / product name)."""
    result = "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in name)
    if result and result[0].isdigit():
        result = "_" + result
    return result


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TargetKind(str, enum.Enum):
    """Closed set of target kinds a package may declare."""

    LIBRARY = "library"
    EXECUTABLE = "executable"
    TEST = "test"
    SYSTEM_MODULE = "systemModule"
    BINARY = "binary"
    PLUGIN = "plugin"
    SNIPPET = "snippet"


_KIND_ALIASES: dict[str, TargetKind] = {
    "system-target": TargetKind.SYSTEM_MODULE,
    "system_module": TargetKind.SYSTEM_MODULE,
    "system-module": TargetKind.SYSTEM_MODULE,
    "regular": TargetKind.LIBRARY,
}


class PlatformCondition(BaseModel):
    """Platforms an edge applies to.  Carried for completeness, ignored by planning."""

    model_config = ConfigDict(frozen=True)

    platforms: tuple[str, ...] = ()


class TargetDependency(BaseModel):
    """Edge from a target to another target."""

    model_config = ConfigDict(frozen=True)

    target: TargetKey
    condition: PlatformCondition | None = None


class ProductDependency(BaseModel):
    """Edge from a target to a product; fans out to every member target."""

    model_config = ConfigDict(frozen=True)

    product: ProductKey
    condition: PlatformCondition | None = None


Dependency = Union[TargetDependency, ProductDependency]


class Target(BaseModel):
    """A compilable unit of source within a package."""

    model_config = ConfigDict(frozen=True)

    package: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    kind: TargetKind
    path: str = ""
    sources: tuple[str, ...] = ()
    dependencies: tuple[Dependency, ...] = ()

    @property
    def key(self) -> TargetKey:
        return TargetKey(self.package, self.name)

    @property
    def c99name(self) -> str:
        return c99name(self.name)


class Product(BaseModel):
    """A named export surface of a package bundling one or more targets."""

    model_config = ConfigDict(frozen=True)

    package: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    targets: tuple[str, ...] = ()

    @property
    def key(self) -> ProductKey:
        return ProductKey(self.package, self.name)


class SupportedPlatform(BaseModel):
    """A platform declared by a package manifest."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str | None = None


class Package(BaseModel):
    """A named source unit owning targets and products."""

    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., min_length=1)
    display_name: str = ""
    path: str = ""
    platforms: tuple[SupportedPlatform, ...] = ()
    targets: tuple[str, ...] = ()
    products: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.display_name or self.identity

    @property
    def supported_platforms(self) -> list[Platform]:
        """Declared platforms binforge can build for, in declaration order."""
        result: list[Platform] = []
        for declared in self.platforms:
            platform = Platform.from_platform_name(declared.name)
            if platform is not None and platform not in result:
                result.append(platform)
        return result


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class PackageGraph:
    """Immutable, fully-resolved package graph for one run.

    References are checked on construction: every target edge, product
    edge and product member must name an entity in the tables.
    """

    __slots__ = ("_packages", "_targets", "_products", "_roots")

    def __init__(
        self,
        *,
        packages: Iterable[Package],
        targets: Iterable[Target],
        products: Iterable[Product] = (),
        roots: Iterable[str] = (),
    ) -> None:
        self._packages: dict[str, Package] = {p.identity: p for p in packages}
        self._targets: dict[TargetKey, Target] = {t.key: t for t in targets}
        self._products: dict[ProductKey, Product] = {p.key: p for p in products}
        self._roots: tuple[str, ...] = tuple(roots)
        self._check_references()

    # -- lookups -------------------------------------------------------------

    @property
    def packages(self) -> list[Package]:
        return list(self._packages.values())

    @property
    def targets(self) -> list[Target]:
        return list(self._targets.values())

    @property
    def root_packages(self) -> list[Package]:
        return [self._packages[r] for r in self._roots if r in self._packages]

    def package(self, identity: str) -> Package:
        return self._packages[identity]

    def target(self, key: TargetKey) -> Target:
        try:
            return self._targets[key]
        except KeyError:
            raise UnknownTarget(str(key)) from None

    def product(self, key: ProductKey) -> Product:
        try:
            return self._products[key]
        except KeyError:
            raise UnknownProduct(str(key)) from None

    def package_of(self, target: Target) -> Package:
        return self._packages[target.package]

    def targets_of_package(self, package: Package) -> list[Target]:
        return [self._targets[TargetKey(package.identity, n)] for n in package.targets]

    def products_of_package(self, package: Package) -> list[Product]:
        return [self._products[ProductKey(package.identity, n)] for n in package.products]

    def targets_of(self, product: Product) -> list[Target]:
        return [self._targets[TargetKey(product.package, n)] for n in product.targets]

    def dependencies_of(self, target: Target) -> tuple[Dependency, ...]:
        return target.dependencies

    # -- traversal -----------------------------------------------------------

    def direct_target_dependencies(self, target: Target) -> list[Target]:
        """Targets *target* depends on directly, with product edges fanned out."""
        result: list[Target] = []
        for dep in target.dependencies:
            if isinstance(dep, TargetDependency):
                candidates = [self._targets[dep.target]]
            else:
                candidates = self.targets_of(self._products[dep.product])
            for candidate in candidates:
                if candidate not in result:
                    result.append(candidate)
        return result

    def recursive_target_dependencies(self, target: Target) -> list[Target]:
        """All targets reachable from *target*, excluding *target* itself.

        Safe on cyclic graphs: each target is visited once.
        """
        seen: set[TargetKey] = {target.key}
        result: list[Target] = []
        stack = list(reversed(self.direct_target_dependencies(target)))
        while stack:
            current = stack.pop()
            if current.key in seen:
                continue
            seen.add(current.key)
            result.append(current)
            stack.extend(reversed(self.direct_target_dependencies(current)))
        return result

    def reachable_targets(self) -> list[Target]:
        """Every target owned by a root package or reachable from one."""
        seen: set[TargetKey] = set()
        result: list[Target] = []
        for package in self.root_packages:
            for target in self.targets_of_package(package):
                for t in [target, *self.recursive_target_dependencies(target)]:
                    if t.key not in seen:
                        seen.add(t.key)
                        result.append(t)
        return result

    # -- construction --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, source: str | None = None) -> "PackageGraph":
        """Factory: build a graph from a package-graph provider dump.

        Expected shape::

            {"root": "app",
             "packages": [{"identity": "app", "name": "App", "path": "...",
                           "platforms": [{"name": "ios", "version": "13.0"}],
                           "targets": [{"name": "Core", "kind": "library",
                                        "sources": ["Core.swift"],
                                        "dependencies": [{"target": "Util"},
                                                         {"product": "Log",
                                                          "package": "log"}]}],
                           "products": [{"name": "App", "targets": ["Core"]}]}]}

        ``roots`` (a list) may be given instead of ``root``.
        """
        if not isinstance(data, dict):
            raise GraphLoadError("top-level value must be an object", source=source)

        packages: list[Package] = []
        targets: list[Target] = []
        products: list[Product] = []

        try:
            for raw_pkg in data.get("packages", []):
                identity = raw_pkg["identity"]
                raw_targets = raw_pkg.get("targets", [])
                raw_products = raw_pkg.get("products", [])
                for raw_target in raw_targets:
                    targets.append(_parse_target(identity, raw_target))
                for raw_product in raw_products:
                    products.append(
                        Product(
                            package=identity,
                            name=raw_product["name"],
                            targets=tuple(raw_product.get("targets", [])),
                        )
                    )
                packages.append(
                    Package(
                        identity=identity,
                        display_name=raw_pkg.get("name", ""),
                        path=raw_pkg.get("path", ""),
                        platforms=tuple(
                            SupportedPlatform.model_validate(p)
                            for p in raw_pkg.get("platforms", [])
                        ),
                        targets=tuple(t["name"] for t in raw_targets),
                        products=tuple(p["name"] for p in raw_products),
                    )
                )
        except KeyError as exc:
            raise GraphLoadError(f"missing required key {exc}", source=source) from exc
        except (TypeError, ValueError, ValidationError) as exc:
            raise GraphLoadError(str(exc), source=source) from exc

        if "roots" in data:
            roots = list(data["roots"])
        elif data.get("root"):
            roots = [data["root"]]
        else:
            roots = []

        return cls(packages=packages, targets=targets, products=products, roots=roots)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "PackageGraph":
        """Load a graph dump written by the package-graph provider."""
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except OSError as exc:
            raise GraphLoadError(f"cannot read file: {exc}", source=str(p)) from exc
        except json.JSONDecodeError as exc:
            raise GraphLoadError(f"invalid JSON: {exc}", source=str(p)) from exc
        return cls.from_dict(data, source=str(p))

    # -- internals -----------------------------------------------------------

    def _check_references(self) -> None:
        for package in self._packages.values():
            for name in package.targets:
                if TargetKey(package.identity, name) not in self._targets:
                    raise UnknownTarget(f"{package.identity}/{name}")
            for name in package.products:
                if ProductKey(package.identity, name) not in self._products:
                    raise UnknownProduct(f"{package.identity}/{name}")
        for product in self._products.values():
            for name in product.targets:
                if TargetKey(product.package, name) not in self._targets:
                    raise UnknownTarget(
                        f"{product.package}/{name}", referenced_by=str(product.key)
                    )
        for target in self._targets.values():
            for dep in target.dependencies:
                if isinstance(dep, TargetDependency):
                    if dep.target not in self._targets:
                        raise UnknownTarget(str(dep.target), referenced_by=str(target.key))
                elif dep.product not in self._products:
                    raise UnknownProduct(str(dep.product), referenced_by=str(target.key))

    def __repr__(self) -> str:
        return (
            f"PackageGraph(packages={len(self._packages)}, "
            f"targets={len(self._targets)}, roots={list(self._roots)})"
        )


def _parse_kind(raw: str) -> TargetKind:
    alias = _KIND_ALIASES.get(raw)
    if alias is not None:
        return alias
    return TargetKind(raw)


def _parse_target(package: str, raw: dict[str, Any]) -> Target:
    deps: list[Dependency] = []
    for raw_dep in raw.get("dependencies", []):
        condition = None
        if raw_dep.get("condition"):
            condition = PlatformCondition(
                platforms=tuple(raw_dep["condition"].get("platforms", []))
            )
        dep_package = raw_dep.get("package", package)
        if "target" in raw_dep:
            deps.append(
                TargetDependency(
                    target=TargetKey(dep_package, raw_dep["target"]),
                    condition=condition,
                )
            )
        elif "product" in raw_dep:
            deps.append(
                ProductDependency(
                    product=ProductKey(dep_package, raw_dep["product"]),
                    condition=condition,
                )
            )
        else:
            raise ValueError(
                f"dependency of '{package}/{raw.get('name')}' names neither "
                "a target nor a product"
            )
    return Target(
        package=package,
        name=raw["name"],
        kind=_parse_kind(raw["kind"]),
        path=raw.get("path", ""),
        sources=tuple(raw.get("sources", [])),
        dependencies=tuple(deps),
    )


__all__ = [
    "Dependency",
    "Package",
    "PackageGraph",
    "PlatformCondition",
    "Product",
    "ProductDependency",
    "ProductKey",
    "SupportedPlatform",
    "Target",
    "TargetDependency",
    "TargetKey",
    "TargetKind",
]
