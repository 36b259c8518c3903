"""Workspace layout — where the build tool keeps its working state.

One ``WorkspaceLayout`` per run.  The working directory is reusable
across runs and keyed by (package, configuration, platform) so platform
builds of the same unit never share derived data.

Layout::

    <workspace>/
        DerivedData/<package>/<Configuration>[-<sdk>]/
        archives/<package>/<Configuration>[-<sdk>]/<Target>.xcarchive
        dSYMs/<package>/<Configuration>[-<sdk>]/<Target>.framework.dSYM
        <PackageName>.project.json
"""

from __future__ import annotations

import uuid
from pathlib import Path

from binforge.graph import c99name
from binforge.planner import BuildUnit, BundleType
from binforge.platforms import BuildConfiguration, Platform, products_directory_name

DEFAULT_WORKSPACE_NAME = "binforge"
STAGING_PREFIX = "."
STAGING_SUFFIX = ".staging-"


class WorkspaceLayout:
    """Path arithmetic for the build-tool working directory.

    Pure: nothing here touches the filesystem.
    """

    __slots__ = ("package_path", "workspace_directory")

    def __init__(self, package_path: str | Path, *, workspace_dir: str | Path | None = None) -> None:
        self.package_path = Path(package_path)
        if workspace_dir is not None:
            self.workspace_directory = Path(workspace_dir)
        else:
            self.workspace_directory = self.build_directory / DEFAULT_WORKSPACE_NAME

    @property
    def build_directory(self) -> Path:
        return self.package_path / ".build"

    @property
    def derived_data_root(self) -> Path:
        return self.workspace_directory / "DerivedData"

    @property
    def archives_root(self) -> Path:
        return self.workspace_directory / "archives"

    @property
    def debug_symbols_root(self) -> Path:
        return self.workspace_directory / "dSYMs"

    def derived_data_path(
        self, package: str, configuration: BuildConfiguration, platform: Platform
    ) -> Path:
        return self.derived_data_root / package / products_directory_name(configuration, platform)

    def archive_path(
        self, unit: BuildUnit, configuration: BuildConfiguration, platform: Platform
    ) -> Path:
        return (
            self.archives_root
            / unit.package
            / products_directory_name(configuration, platform)
            / f"{unit.target}.xcarchive"
        )

    def product_path_in_archive(self, archive: Path, unit: BuildUnit) -> Path:
        """Where the archived framework (or executable) lands inside *archive*."""
        if unit.bundle_type is BundleType.FRAMEWORK:
            return archive / "Products" / "Library" / "Frameworks" / f"{c99name(unit.target)}.framework"
        return archive / "Products" / "usr" / "local" / "bin" / unit.target

    def binary_path_in_archive(self, archive: Path, unit: BuildUnit) -> Path:
        """The Mach-O binary debug symbols are extracted from."""
        product = self.product_path_in_archive(archive, unit)
        if unit.bundle_type is BundleType.FRAMEWORK:
            return product / c99name(unit.target)
        return product

    def debug_symbols_path(
        self, unit: BuildUnit, configuration: BuildConfiguration, platform: Platform
    ) -> Path:
        return (
            self.debug_symbols_root
            / unit.package
            / products_directory_name(configuration, platform)
            / f"{c99name(unit.target)}.framework.dSYM"
        )

    def project_path(self, package_name: str) -> Path:
        return self.workspace_directory / f"{package_name}.project.json"


def staging_directory(output_dir: Path, bundle_name: str) -> Path:
    """A fresh, hidden sibling of the final bundle used for assembly.

    Lives inside *output_dir* so the final rename stays on one filesystem.
    """
    return output_dir / f"{STAGING_PREFIX}{bundle_name}{STAGING_SUFFIX}{uuid.uuid4().hex[:12]}"


__all__ = ["DEFAULT_WORKSPACE_NAME", "WorkspaceLayout", "staging_directory"]
