"""Tests for binforge.graph — loading, reference checks and traversal."""

import json

import pytest

from binforge.errors import GraphLoadError, UnknownProduct, UnknownTarget
from binforge.graph import (
    Package,
    PackageGraph,
    ProductDependency,
    ProductKey,
    Target,
    TargetDependency,
    TargetKey,
    TargetKind,
    c99name,
)
from binforge.platforms import Platform
from tests.conftest import dep, lib, make_graph, product_dep


def _sample_dump() -> dict:
    return {
        "root": "app",
        "packages": [
            {
                "identity": "app",
                "name": "MyApp",
                "path": "/src/app",
                "platforms": [
                    {"name": "ios", "version": "15.0"},
                    {"name": "macos", "version": "12.0"},
                    {"name": "linux"},
                ],
                "targets": [
                    {
                        "name": "Core",
                        "kind": "library",
                        "sources": ["Core.swift"],
                        "dependencies": [
                            {"product": "Log", "package": "log"},
                            {"target": "CShim", "condition": {"platforms": ["linux"]}},
                        ],
                    },
                    {"name": "CShim", "kind": "system-target"},
                ],
                "products": [{"name": "Core", "targets": ["Core"]}],
            },
            {
                "identity": "log",
                "targets": [{"name": "Log", "kind": "regular"}],
                "products": [{"name": "Log", "targets": ["Log"]}],
            },
        ],
    }


class TestFromDict:
    def test_loads_packages_targets_products(self) -> None:
        graph = PackageGraph.from_dict(_sample_dump())
        assert [p.identity for p in graph.packages] == ["app", "log"]
        assert {str(t.key) for t in graph.targets} == {"app/Core", "app/CShim", "log/Log"}
        assert graph.product(ProductKey("log", "Log")).targets == ("Log",)

    def test_root_package(self) -> None:
        graph = PackageGraph.from_dict(_sample_dump())
        assert [p.identity for p in graph.root_packages] == ["app"]
        assert graph.root_packages[0].name == "MyApp"

    def test_roots_list_accepted(self) -> None:
        data = _sample_dump()
        del data["root"]
        data["roots"] = ["log", "app"]
        graph = PackageGraph.from_dict(data)
        assert [p.identity for p in graph.root_packages] == ["log", "app"]

    def test_missing_root_gives_no_roots(self) -> None:
        data = _sample_dump()
        del data["root"]
        assert PackageGraph.from_dict(data).root_packages == []

    def test_kind_aliases(self) -> None:
        graph = PackageGraph.from_dict(_sample_dump())
        assert graph.target(TargetKey("app", "CShim")).kind is TargetKind.SYSTEM_MODULE
        assert graph.target(TargetKey("log", "Log")).kind is TargetKind.LIBRARY

    def test_dependency_edges(self) -> None:
        core = PackageGraph.from_dict(_sample_dump()).target(TargetKey("app", "Core"))
        product_edge, target_edge = core.dependencies
        assert isinstance(product_edge, ProductDependency)
        assert product_edge.product == ProductKey("log", "Log")
        assert isinstance(target_edge, TargetDependency)
        assert target_edge.target == TargetKey("app", "CShim")
        assert target_edge.condition.platforms == ("linux",)

    def test_supported_platforms_skip_unknown(self) -> None:
        app = PackageGraph.from_dict(_sample_dump()).package("app")
        assert app.supported_platforms == [Platform.IOS, Platform.MACOS]

    def test_non_object_rejected(self) -> None:
        with pytest.raises(GraphLoadError):
            PackageGraph.from_dict(["not", "a", "dict"])  # type: ignore[arg-type]

    def test_missing_key_rejected(self) -> None:
        with pytest.raises(GraphLoadError, match="missing required key"):
            PackageGraph.from_dict({"packages": [{"targets": []}]})

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(GraphLoadError):
            make_graph({"identity": "app", "targets": [lib("A", kind="widget")]})

    def test_dependency_without_target_or_product_rejected(self) -> None:
        with pytest.raises(GraphLoadError, match="neither"):
            make_graph({"identity": "app", "targets": [lib("A", {"package": "x"})]})


class TestFromJsonFile:
    def test_round_trip_from_disk(self, tmp_path) -> None:
        path = tmp_path / "graph.json"
        path.write_text(json.dumps(_sample_dump()), encoding="utf-8")
        graph = PackageGraph.from_json_file(path)
        assert len(graph.targets) == 3

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(GraphLoadError) as exc_info:
            PackageGraph.from_json_file(tmp_path / "nope.json")
        assert exc_info.value.source.endswith("nope.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "graph.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(GraphLoadError, match="invalid JSON"):
            PackageGraph.from_json_file(path)


class TestReferenceChecks:
    def test_unknown_target_edge(self) -> None:
        with pytest.raises(UnknownTarget) as exc_info:
            make_graph({"identity": "app", "targets": [lib("A", dep("Ghost"))]})
        assert exc_info.value.target == "app/Ghost"
        assert exc_info.value.referenced_by == "app/A"

    def test_unknown_product_edge(self) -> None:
        with pytest.raises(UnknownProduct) as exc_info:
            make_graph({"identity": "app", "targets": [lib("A", product_dep("Net", "net"))]})
        assert exc_info.value.product == "net/Net"

    def test_unknown_product_member(self) -> None:
        with pytest.raises(UnknownTarget):
            make_graph(
                {
                    "identity": "app",
                    "targets": ["A"],
                    "products": [{"name": "P", "targets": ["A", "Missing"]}],
                }
            )

    def test_package_listing_unknown_product(self) -> None:
        with pytest.raises(UnknownProduct):
            PackageGraph(
                packages=[Package(identity="app", products=("Ghost",))],
                targets=[],
            )

    def test_lookup_of_missing_target(self) -> None:
        graph = make_graph({"identity": "app", "targets": ["A"]})
        with pytest.raises(UnknownTarget):
            graph.target(TargetKey("app", "B"))


class TestTraversal:
    def _graph(self) -> PackageGraph:
        return make_graph(
            {
                "identity": "app",
                "targets": [
                    lib("A", dep("B"), product_dep("Net", "net")),
                    lib("B", dep("C")),
                    lib("C"),
                ],
            },
            {
                "identity": "net",
                "targets": ["NetCore", lib("NetHTTP", dep("NetCore"))],
                "products": [{"name": "Net", "targets": ["NetHTTP", "NetCore"]}],
            },
        )

    def test_direct_dependencies_fan_out_products(self) -> None:
        graph = self._graph()
        direct = graph.direct_target_dependencies(graph.target(TargetKey("app", "A")))
        assert [str(t.key) for t in direct] == ["app/B", "net/NetHTTP", "net/NetCore"]

    def test_dependencies_of_keeps_edges_and_conditions(self) -> None:
        graph = PackageGraph.from_dict(_sample_dump())
        edges = graph.dependencies_of(graph.target(TargetKey("app", "Core")))
        assert len(edges) == 2
        product_edge, target_edge = edges
        assert isinstance(product_edge, ProductDependency)
        assert product_edge.product == ProductKey("log", "Log")
        assert product_edge.condition is None
        assert isinstance(target_edge, TargetDependency)
        assert target_edge.target == TargetKey("app", "CShim")
        assert target_edge.condition.platforms == ("linux",)

    def test_recursive_dependencies(self) -> None:
        graph = self._graph()
        deps = graph.recursive_target_dependencies(graph.target(TargetKey("app", "A")))
        assert {str(t.key) for t in deps} == {"app/B", "app/C", "net/NetHTTP", "net/NetCore"}
        assert len(deps) == 4

    def test_recursive_dependencies_survive_cycles(self) -> None:
        graph = make_graph(
            {"identity": "app", "targets": [lib("A", dep("B")), lib("B", dep("A"))]}
        )
        deps = graph.recursive_target_dependencies(graph.target(TargetKey("app", "A")))
        assert [t.name for t in deps] == ["B"]

    def test_reachable_targets(self) -> None:
        graph = self._graph()
        names = {t.name for t in graph.reachable_targets()}
        assert names == {"A", "B", "C", "NetHTTP", "NetCore"}

    def test_targets_and_products_of_package(self) -> None:
        graph = self._graph()
        net = graph.package("net")
        assert [t.name for t in graph.targets_of_package(net)] == ["NetCore", "NetHTTP"]
        assert [p.name for p in graph.products_of_package(net)] == ["Net"]


class TestC99Name:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Core", "Core"),
            ("my-lib", "my_lib"),
            ("Swift Algorithms", "Swift_Algorithms"),
            ("1Password", "_1Password"),
        ],
    )
    def test_c99name(self, name: str, expected: str) -> None:
        assert c99name(name) == expected

    def test_target_property(self) -> None:
        target = Target(package="app", name="my-lib", kind=TargetKind.LIBRARY)
        assert target.c99name == "my_lib"
