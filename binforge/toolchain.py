"""Toolchain clients — typed wrappers over the external build processes.

``BuildToolClient`` archives one unit for one platform and combines
platform slices into a bundle.  ``DebugSymbolExtractor`` pulls a
``.dSYM`` out of an archived binary.

Both go through an :class:`~binforge.runner.Executor` and raise a typed
:class:`~binforge.errors.ExternalToolFailure` on a non-zero exit.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel, ConfigDict

from binforge.errors import BuildToolFailure, DebugSymbolExtractionFailure
from binforge.planner import BuildUnit, BundleType
from binforge.platforms import BuildConfiguration, FrameworkType, Platform
from binforge.runner import Executor, RunResult
from binforge.workspace import WorkspaceLayout

logger = logging.getLogger(__name__)


class PlatformArtifact(BaseModel):
    """A single-platform build product of one unit."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    archive_path: Path
    product_path: Path
    binary_path: Path


class BuildToolClient:
    """Drives the build tool (``xcodebuild``) for archive and combine steps."""

    __slots__ = ("_executor", "_layout", "_tool", "_framework_type", "_embed_symbols")

    def __init__(
        self,
        executor: Executor,
        layout: WorkspaceLayout,
        *,
        tool: str = "xcodebuild",
        framework_type: FrameworkType = FrameworkType.DYNAMIC,
        embed_debug_symbols: bool = False,
    ) -> None:
        self._executor = executor
        self._layout = layout
        self._tool = tool
        self._framework_type = framework_type
        self._embed_symbols = embed_debug_symbols

    def archive_arguments(
        self,
        unit: BuildUnit,
        configuration: BuildConfiguration,
        platform: Platform,
    ) -> list[str]:
        argv = [
            self._tool,
            "archive",
            "-scheme", unit.target,
            "-configuration", configuration.settings_value,
            "-destination", platform.destination,
            "-sdk", platform.settings_value,
            "-archivePath", str(self._layout.archive_path(unit, configuration, platform)),
            "-derivedDataPath",
            str(self._layout.derived_data_path(unit.package, configuration, platform)),
            "SKIP_INSTALL=NO",
            "BUILD_LIBRARY_FOR_DISTRIBUTION=YES",
        ]
        if self._framework_type is FrameworkType.STATIC:
            argv.append("MACH_O_TYPE=staticlib")
        if self._embed_symbols:
            argv.append("DEBUG_INFORMATION_FORMAT=dwarf-with-dsym")
        return argv

    async def archive(
        self,
        unit: BuildUnit,
        configuration: BuildConfiguration,
        platform: Platform,
        *,
        cwd: str | None = None,
    ) -> PlatformArtifact:
        """Build *unit* for *platform*.

        Raises :class:`BuildToolFailure` if the build tool exits non-zero.
        """
        logger.info("[toolchain] archiving %s for %s", unit.target, platform.display_name)
        result = await self._executor.execute(
            self.archive_arguments(unit, configuration, platform), cwd=cwd
        )
        _raise_for_result(result, unit, platform, step="archive")

        archive = self._layout.archive_path(unit, configuration, platform)
        return PlatformArtifact(
            platform=platform,
            archive_path=archive,
            product_path=self._layout.product_path_in_archive(archive, unit),
            binary_path=self._layout.binary_path_in_archive(archive, unit),
        )

    def create_bundle_arguments(
        self,
        unit: BuildUnit,
        artifacts: Sequence[PlatformArtifact],
        debug_symbols: dict[Platform, Path] | None,
        output_path: Path,
    ) -> list[str]:
        flag = "-framework" if unit.bundle_type is BundleType.FRAMEWORK else "-library"
        argv = [self._tool, "-create-xcframework"]
        for artifact in artifacts:
            argv += [flag, str(artifact.product_path)]
            if debug_symbols and artifact.platform in debug_symbols:
                argv += ["-debug-symbols", str(debug_symbols[artifact.platform])]
        argv += ["-output", str(output_path)]
        return argv

    async def create_bundle(
        self,
        unit: BuildUnit,
        artifacts: Sequence[PlatformArtifact],
        *,
        debug_symbols: dict[Platform, Path] | None = None,
        output_path: Path,
    ) -> Path:
        """Combine platform *artifacts* into one bundle at *output_path*.

        Raises :class:`BuildToolFailure` if the build tool exits non-zero.
        """
        result = await self._executor.execute(
            self.create_bundle_arguments(unit, artifacts, debug_symbols, output_path)
        )
        _raise_for_result(result, unit, None, step="create-bundle")
        return output_path


class DebugSymbolExtractor:
    """Extracts ``.dSYM`` bundles with ``dsymutil``."""

    __slots__ = ("_executor", "_layout", "_tool")

    def __init__(self, executor: Executor, layout: WorkspaceLayout, *, tool: str = "dsymutil") -> None:
        self._executor = executor
        self._layout = layout
        self._tool = tool

    async def extract(
        self,
        unit: BuildUnit,
        configuration: BuildConfiguration,
        artifact: PlatformArtifact,
    ) -> Path:
        """Write the dSYM for *artifact* and return its path.

        Raises :class:`DebugSymbolExtractionFailure` on a non-zero exit.
        """
        output = self._layout.debug_symbols_path(unit, configuration, artifact.platform)
        argv = [self._tool, str(artifact.binary_path), "-o", str(output)]
        logger.info(
            "[toolchain] extracting debug symbols of %s for %s",
            unit.target,
            artifact.platform.display_name,
        )
        result = await self._executor.execute(argv)
        if not result.ok:
            raise DebugSymbolExtractionFailure(
                unit.target,
                artifact.platform.value,
                result.exit_code,
                stderr_tail=result.stderr_tail(),
            )
        return output


def _raise_for_result(
    result: RunResult, unit: BuildUnit, platform: Platform | None, *, step: str
) -> None:
    if result.ok:
        return
    logger.error(
        "[toolchain] %s of %s failed (exit=%d killed=%s): %s",
        step,
        unit.target,
        result.exit_code,
        result.killed,
        result.command,
    )
    raise BuildToolFailure(
        unit.target,
        platform.value if platform else None,
        result.exit_code,
        step=step,
        stderr_tail=result.stderr_tail(),
    )


__all__ = ["BuildToolClient", "DebugSymbolExtractor", "PlatformArtifact"]
