"""Pipeline — the run boundary wiring planner, emitter and orchestrator.

    graph → BuildPlanner.resolve_build_order() → (ProjectEmitter)
          → BuildOrchestrator.build_all() → bundles on disk
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from binforge.config import BuildOptions
from binforge.graph import PackageGraph
from binforge.orchestrator import BuildOrchestrator
from binforge.planner import BuildPlanner, BuildUnit
from binforge.project import ProjectEmitter
from binforge.runner import Executor
from binforge.workspace import WorkspaceLayout

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    """What a run produced."""

    model_config = ConfigDict(frozen=True)

    order: list[BuildUnit] = Field(default_factory=list)
    project_path: Path | None = None
    records: list[dict[str, Any]] = Field(default_factory=list)


def plan(graph: PackageGraph, options: BuildOptions) -> list[BuildUnit]:
    """Resolve the build order only."""
    return BuildPlanner(graph, options.mode).resolve_build_order()


async def run_pipeline(
    graph: PackageGraph,
    options: BuildOptions,
    *,
    executor: Executor | None = None,
    emit_project: bool = True,
) -> PipelineResult:
    """Plan, optionally emit the project description, then build every unit.

    Errors propagate unchanged; bundles written before a failure stay on
    disk.
    """
    planner = BuildPlanner(graph, options.mode)
    order = planner.resolve_build_order()
    root = planner.root_package()
    layout = WorkspaceLayout(root.path or ".", workspace_dir=options.workspace_dir)

    project_path: Path | None = None
    if emit_project:
        project_path = ProjectEmitter(graph, options).write(
            order, layout.project_path(root.name)
        )
        logger.info("[pipeline] project description written to %s", project_path)

    if not order:
        logger.info("[pipeline] nothing to build")
        return PipelineResult(order=[], project_path=project_path)

    orchestrator = BuildOrchestrator(graph, options, executor=executor, layout=layout)
    records = await orchestrator.build_all(order)
    progress = orchestrator.get_progress()
    logger.info(
        "[pipeline] done: %d/%d bundle(s) in %s",
        progress.completed,
        progress.total,
        options.output_dir,
    )
    return PipelineResult(
        order=list(order),
        project_path=project_path,
        records=[r.to_dict() for r in records],
    )


__all__ = ["PipelineResult", "plan", "run_pipeline"]
