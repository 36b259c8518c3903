"""Build orchestrator — turns ordered build units into bundles on disk.

For each unit:

1. archive the unit once per target platform (concurrently),
2. join; any platform failure aborts the unit,
3. clear (or refuse to clear) an existing bundle of the same name,
4. optionally extract per-platform debug symbols (concurrently, fatal on
   failure),
5. combine every slice into one bundle under a staging directory and
   rename it into place, so the final name only ever holds a complete
   bundle.

Units themselves are built strictly one at a time, in order: the build
tool's working directory is a single-writer resource and later units may
embed earlier ones.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

from pydantic import BaseModel, ConfigDict

from binforge.concurrency import run_steps
from binforge.config import BuildOptions
from binforge.errors import (
    BinforgeError,
    BuildToolFailure,
    FilesystemConflict,
    FilesystemError,
    PackageNotDefined,
)
from binforge.graph import PackageGraph
from binforge.planner import BuildUnit
from binforge.platforms import Platform, expand_platforms
from binforge.runner import Executor, ProcessExecutor
from binforge.toolchain import BuildToolClient, DebugSymbolExtractor, PlatformArtifact
from binforge.workspace import WorkspaceLayout, staging_directory

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Run records
# ---------------------------------------------------------------------------


class UnitStatus(str, enum.Enum):
    """Lifecycle states for a unit within one run."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class UnitRecord:
    """Mutable per-unit state for a run.  Status transitions happen in ``build_all``."""

    __slots__ = ("unit", "status", "bundle_path", "started_at", "completed_at", "error")

    def __init__(self, unit: BuildUnit) -> None:
        self.unit = unit
        self.status = UnitStatus.PENDING
        self.bundle_path: Path | None = None
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.error: dict[str, Any] | None = None

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.unit.package,
            "target": self.unit.target,
            "status": self.status.value,
            "bundle_path": str(self.bundle_path) if self.bundle_path else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }

    def __repr__(self) -> str:
        return f"UnitRecord(target={self.unit.target!r}, status={self.status.value!r})"


class RunProgress(BaseModel):
    """Aggregate progress snapshot for a run."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    completed: int = 0
    failed: int = 0
    blocked: int = 0
    in_progress: int = 0
    pending: int = 0
    percentage: float = 0.0


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class BuildOrchestrator:
    """Builds units into multi-platform bundles.

    The graph, options and workspace layout are passed in explicitly;
    *executor* defaults to real subprocesses.
    """

    def __init__(
        self,
        graph: PackageGraph,
        options: BuildOptions,
        *,
        executor: Executor | None = None,
        layout: WorkspaceLayout | None = None,
    ) -> None:
        roots = graph.root_packages
        if not roots:
            raise PackageNotDefined()
        self.graph = graph
        self.options = options
        self.root = roots[0]
        self.layout = layout or WorkspaceLayout(
            self.root.path or ".", workspace_dir=options.workspace_dir
        )
        executor = executor or ProcessExecutor(timeout_s=options.build_timeout_s)
        self._builder = BuildToolClient(
            executor,
            self.layout,
            tool=options.build_tool,
            framework_type=options.framework_type,
            embed_debug_symbols=options.embed_debug_symbols,
        )
        self._extractor = DebugSymbolExtractor(
            executor, self.layout, tool=options.debug_symbol_tool
        )
        self.records: list[UnitRecord] = []

    # -- platforms -----------------------------------------------------------

    def platforms_for(self, unit: BuildUnit) -> list[Platform]:
        """Target platforms of *unit*.

        Resolution order:
          1. ``BuildOptions.platforms`` (explicit override)
          2. platforms declared by the unit's package
          3. platforms declared by the root package
          4. macOS
        """
        if self.options.platforms:
            base = list(self.options.platforms)
        else:
            base = (
                self.graph.package(unit.package).supported_platforms
                or self.root.supported_platforms
            )
            if not base:
                logger.warning(
                    "[orchestrator] no platforms declared for %s, defaulting to macOS",
                    unit.package,
                )
                base = [Platform.MACOS]
        return expand_platforms(base, include_simulators=self.options.include_simulators)

    # -- single unit ---------------------------------------------------------

    async def build(self, unit: BuildUnit, output_dir: str | Path, overwrite: bool) -> Path:
        """Build *unit* into ``<output_dir>/<Target>.xcframework``.

        Raises
        ------
        BuildToolFailure
            A platform archive or the combine step failed.
        DebugSymbolExtractionFailure
            Symbol embedding is on and extraction failed for a platform.
        FilesystemConflict
            The bundle already exists and *overwrite* is false.
        FilesystemError
            Clearing, staging or moving the bundle hit an OS error.
        """
        output_dir = Path(output_dir)
        configuration = self.options.build_configuration
        platforms = self.platforms_for(unit)
        cwd = self.graph.package(unit.package).path or None

        logger.info(
            "[orchestrator] building %s for %s",
            unit.target,
            ", ".join(p.display_name for p in platforms),
        )

        outcomes = await run_steps(
            [
                (p.value, self._builder.archive(unit, configuration, p, cwd=cwd))
                for p in platforms
            ],
            max_concurrent=self.options.max_parallel_platforms,
        )
        _raise_first_failure(unit, outcomes)
        artifacts: list[PlatformArtifact] = [o.value for o in outcomes]

        final_path = output_dir / unit.bundle_name
        await self._clear_destination(unit, final_path, overwrite)

        debug_symbols: dict[Platform, Path] | None = None
        if self.options.embed_debug_symbols:
            symbol_outcomes = await run_steps(
                [
                    (a.platform.value, self._extractor.extract(unit, configuration, a))
                    for a in artifacts
                ],
                max_concurrent=self.options.max_parallel_platforms,
            )
            _raise_first_failure(unit, symbol_outcomes)
            debug_symbols = {
                a.platform: o.value for a, o in zip(artifacts, symbol_outcomes)
            }

        logger.info("[orchestrator] combining %s into %s", unit.target, unit.bundle_name)
        return await self._assemble(unit, artifacts, debug_symbols, output_dir, final_path)

    # -- whole order ---------------------------------------------------------

    async def build_all(
        self,
        order: Sequence[BuildUnit],
        output_dir: str | Path | None = None,
        overwrite: bool | None = None,
    ) -> list[UnitRecord]:
        """Build every unit of *order*, one at a time, left to right.

        Stops at the first failure: the failing unit is marked failed, the
        rest blocked, and the error is re-raised.  Bundles already written
        stay on disk.
        """
        out = Path(output_dir) if output_dir is not None else self.options.output_dir
        replace = self.options.overwrite if overwrite is None else overwrite
        self.records = [UnitRecord(u) for u in order]

        for index, record in enumerate(self.records):
            record.status = UnitStatus.IN_PROGRESS
            record.started_at = datetime.now(timezone.utc)
            try:
                record.bundle_path = await self.build(record.unit, out, replace)
            except BinforgeError as exc:
                record.status = UnitStatus.FAILED
                record.error = exc.to_dict()
                record.completed_at = datetime.now(timezone.utc)
                for rest in self.records[index + 1:]:
                    rest.status = UnitStatus.BLOCKED
                    rest.error = {"message": f"Blocked by failed unit {record.unit.target}"}
                logger.error(
                    "[orchestrator] %s failed, %d unit(s) not started: %s",
                    record.unit.target,
                    len(self.records) - index - 1,
                    exc,
                )
                raise
            record.status = UnitStatus.COMPLETED
            record.completed_at = datetime.now(timezone.utc)

        return self.records

    def get_progress(self) -> RunProgress:
        """Compute aggregate progress over the current records."""
        total = len(self.records)
        counts = {s: 0 for s in UnitStatus}
        for record in self.records:
            counts[record.status] += 1
        pct = (counts[UnitStatus.COMPLETED] / total * 100) if total else 0.0
        return RunProgress(
            total=total,
            completed=counts[UnitStatus.COMPLETED],
            failed=counts[UnitStatus.FAILED],
            blocked=counts[UnitStatus.BLOCKED],
            in_progress=counts[UnitStatus.IN_PROGRESS],
            pending=counts[UnitStatus.PENDING],
            percentage=round(pct, 1),
        )

    # -- internals -----------------------------------------------------------

    async def _clear_destination(
        self, unit: BuildUnit, final_path: Path, overwrite: bool
    ) -> None:
        if not (final_path.exists() or final_path.is_symlink()):
            return
        if not overwrite:
            raise FilesystemConflict(str(final_path))
        logger.info("[orchestrator] deleting existing %s", final_path.name)
        if final_path.is_dir() and not final_path.is_symlink():
            await _filesystem_step(
                unit, final_path, "clear-destination", shutil.rmtree, final_path
            )
        else:
            await _filesystem_step(unit, final_path, "clear-destination", final_path.unlink)

    async def _assemble(
        self,
        unit: BuildUnit,
        artifacts: list[PlatformArtifact],
        debug_symbols: dict[Platform, Path] | None,
        output_dir: Path,
        final_path: Path,
    ) -> Path:
        staging = staging_directory(output_dir, unit.bundle_name)
        staged_bundle = staging / unit.bundle_name
        await _filesystem_step(unit, staging, "create-staging", staging.mkdir, parents=True)
        try:
            await self._builder.create_bundle(
                unit, artifacts, debug_symbols=debug_symbols, output_path=staged_bundle
            )
            if not staged_bundle.exists():
                raise BuildToolFailure(
                    unit.target,
                    None,
                    0,
                    step="create-bundle",
                    stderr_tail=f"no bundle was written to {staged_bundle}",
                )
            if final_path.exists():
                raise FilesystemConflict(str(final_path))
            await _filesystem_step(
                unit, final_path, "move-into-place", os.replace, staged_bundle, final_path
            )
        finally:
            await _in_thread(shutil.rmtree, staging, ignore_errors=True)

        logger.info("[orchestrator] wrote %s", final_path)
        return final_path


def _raise_first_failure(unit: BuildUnit, outcomes) -> None:
    failures = [o.failure for o in outcomes if not o.ok]
    if not failures:
        return
    for extra in failures[1:]:
        logger.error("[orchestrator] %s: %s", unit.target, extra)
    raise failures[0]


async def _in_thread(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run blocking filesystem work off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))


async def _filesystem_step(
    unit: BuildUnit,
    path: Path,
    step: str,
    fn: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Run *fn* off the event loop, reporting an ``OSError`` as :class:`FilesystemError`."""
    try:
        return await _in_thread(fn, *args, **kwargs)
    except OSError as exc:
        logger.error("[orchestrator] %s of %s failed at %s: %s", step, unit.target, path, exc)
        raise FilesystemError(unit.target, str(path), step=step, reason=str(exc)) from exc


__all__ = ["BuildOrchestrator", "RunProgress", "UnitRecord", "UnitStatus"]
