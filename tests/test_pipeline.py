"""Tests for binforge.pipeline — plan → project → build."""

import json

import pytest

from binforge.config import BuildOptions
from binforge.errors import BuildToolFailure, CycleDetected
from binforge.pipeline import plan, run_pipeline
from binforge.planner import RunMode
from binforge.platforms import Platform
from tests.conftest import dep, lib, make_graph


def _graph(tmp_path):
    return make_graph(
        {
            "identity": "app",
            "name": "App",
            "path": str(tmp_path / "app"),
            "targets": [lib("Core"), lib("App", dep("Core"), kind="executable")],
            "products": [{"name": "App", "targets": ["Core", "App"]}],
        }
    )


def _options(tmp_path, **overrides):
    return BuildOptions(
        output_dir=tmp_path / "out",
        workspace_dir=tmp_path / "ws",
        platforms=(Platform.MACOS,),
        **overrides,
    )


class TestPlan:
    def test_plan(self, tmp_path) -> None:
        order = plan(_graph(tmp_path), _options(tmp_path))
        assert [u.target for u in order] == ["Core", "App"]

    def test_plan_propagates_cycle(self, tmp_path) -> None:
        graph = make_graph(
            {
                "identity": "app",
                "targets": [lib("A", dep("B")), lib("B", dep("A"))],
                "products": [{"name": "A", "targets": ["A"]}],
            }
        )
        with pytest.raises(CycleDetected):
            plan(graph, _options(tmp_path))


class TestRunPipeline:
    @pytest.mark.asyncio
    async def test_full_run(self, fake_executor, tmp_path) -> None:
        result = await run_pipeline(
            _graph(tmp_path), _options(tmp_path), executor=fake_executor
        )

        assert [u.target for u in result.order] == ["Core", "App"]
        assert [r["status"] for r in result.records] == ["completed", "completed"]
        assert (tmp_path / "out" / "Core.xcframework").is_dir()
        assert (tmp_path / "out" / "App.xcframework").is_dir()
        assert result.project_path == tmp_path / "ws" / "App.project.json"
        project = json.loads(result.project_path.read_text(encoding="utf-8"))
        assert [t["name"] for t in project["targets"]] == ["App", "Core"]

    @pytest.mark.asyncio
    async def test_skip_project(self, fake_executor, tmp_path) -> None:
        result = await run_pipeline(
            _graph(tmp_path), _options(tmp_path), executor=fake_executor, emit_project=False
        )
        assert result.project_path is None
        assert not (tmp_path / "ws").exists()

    @pytest.mark.asyncio
    async def test_nothing_to_build(self, fake_executor, tmp_path) -> None:
        graph = make_graph({"identity": "app", "path": str(tmp_path), "targets": ["Solo"]})
        result = await run_pipeline(
            graph,
            _options(tmp_path, mode=RunMode.PREPARE_DEPENDENCIES),
            executor=fake_executor,
        )
        assert result.order == []
        assert result.records == []
        assert fake_executor.calls == []
        assert result.project_path.exists()

    @pytest.mark.asyncio
    async def test_failure_propagates(self, fake_executor, tmp_path) -> None:
        fake_executor.fail_when(lambda args: "App" in args and "archive" in args)
        with pytest.raises(BuildToolFailure):
            await run_pipeline(_graph(tmp_path), _options(tmp_path), executor=fake_executor)
        assert (tmp_path / "out" / "Core.xcframework").is_dir()
        assert not (tmp_path / "out" / "App.xcframework").exists()
