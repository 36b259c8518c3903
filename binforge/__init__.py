"""binforge — prebuilt multi-platform bundles from a package graph.

Public API
----------
Graph::

    PackageGraph, Package, Target, TargetKind, Product,
    TargetDependency, ProductDependency, TargetKey, ProductKey,

Planning::

    BuildPlanner, BuildUnit, RunMode, BundleType,

Orchestration::

    BuildOrchestrator, UnitRecord, UnitStatus, RunProgress,

Configuration::

    Settings, BuildOptions, get_settings,
    Platform, BuildConfiguration, FrameworkType,

Project description::

    ProjectEmitter, ProjectDescription,

Pipeline::

    plan, run_pipeline, PipelineResult,

Errors::

    BinforgeError, GraphIntegrityError, PackageNotDefined, CycleDetected,
    UnsupportedTargetKind, ExternalToolFailure, BuildToolFailure,
    DebugSymbolExtractionFailure, FilesystemConflict, FilesystemError,
    ConfigurationError,
"""

from binforge.config import VERSION, BuildOptions, Settings, get_settings
from binforge.errors import (
    BinforgeError,
    BuildToolFailure,
    ConfigurationError,
    CycleDetected,
    DebugSymbolExtractionFailure,
    ExternalToolFailure,
    FilesystemConflict,
    FilesystemError,
    GraphIntegrityError,
    GraphLoadError,
    PackageNotDefined,
    UnknownProduct,
    UnknownTarget,
    UnsupportedTargetKind,
)
from binforge.graph import (
    Package,
    PackageGraph,
    Product,
    ProductDependency,
    ProductKey,
    Target,
    TargetDependency,
    TargetKey,
    TargetKind,
)
from binforge.orchestrator import BuildOrchestrator, RunProgress, UnitRecord, UnitStatus
from binforge.pipeline import PipelineResult, plan, run_pipeline
from binforge.planner import BuildPlanner, BuildUnit, BundleType, RunMode
from binforge.platforms import BuildConfiguration, FrameworkType, Platform
from binforge.project import ProjectDescription, ProjectEmitter

__version__ = VERSION

__all__ = [
    "BinforgeError",
    "BuildConfiguration",
    "BuildOptions",
    "BuildOrchestrator",
    "BuildPlanner",
    "BuildToolFailure",
    "BuildUnit",
    "BundleType",
    "ConfigurationError",
    "CycleDetected",
    "DebugSymbolExtractionFailure",
    "ExternalToolFailure",
    "FilesystemConflict",
    "FilesystemError",
    "FrameworkType",
    "GraphIntegrityError",
    "GraphLoadError",
    "Package",
    "PackageGraph",
    "PackageNotDefined",
    "PipelineResult",
    "Platform",
    "Product",
    "ProductDependency",
    "ProductKey",
    "ProjectDescription",
    "ProjectEmitter",
    "RunMode",
    "RunProgress",
    "Settings",
    "Target",
    "TargetDependency",
    "TargetKey",
    "TargetKind",
    "UnitRecord",
    "UnitStatus",
    "UnknownProduct",
    "UnknownTarget",
    "UnsupportedTargetKind",
    "get_settings",
    "plan",
    "run_pipeline",
]
