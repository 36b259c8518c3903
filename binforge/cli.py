"""
binforge — build prebuilt multi-platform bundles from a package graph.

Usage
-----
# Show what would be built, dependencies first
binforge plan graph.json

# Build every product of the root package
binforge build graph.json --output XCFrameworks

# Build only the dependencies of the root package, replacing old bundles
binforge build graph.json --mode prepareDependencies --overwrite

# Write the project description only
binforge project graph.json -o App.project.json

Environment
-----------
Every option has a BINFORGE_* environment variable (or .env entry)
counterpart, e.g. BINFORGE_OVERWRITE=1, BINFORGE_PLATFORMS=ios,macos.
Command-line flags win over the environment.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Sequence

from binforge.config import VERSION, BuildOptions, get_settings
from binforge.errors import BinforgeError
from binforge.graph import PackageGraph
from binforge.pipeline import plan, run_pipeline
from binforge.planner import RunMode
from binforge.platforms import BuildConfiguration, FrameworkType, Platform
from binforge.project import ProjectEmitter

logger = logging.getLogger("binforge")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="binforge",
        description="Build prebuilt multi-platform bundles from a package graph.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"binforge {VERSION}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("graph", help="Package graph dump (JSON) from the graph provider")
    common.add_argument(
        "--mode",
        choices=[m.value for m in RunMode],
        default=RunMode.CREATE_PACKAGE.value,
        help="createPackage builds the root package's products; "
        "prepareDependencies builds only what they depend on",
    )
    common.add_argument(
        "--configuration",
        choices=[c.value for c in BuildConfiguration],
        default=None,
        help="Build configuration (default: release)",
    )
    common.add_argument(
        "--framework-type",
        choices=[f.value for f in FrameworkType],
        default=None,
        help="Framework linkage (default: dynamic)",
    )
    common.add_argument(
        "--workspace-dir",
        default=None,
        help="Build-tool working directory (default: <package>/.build/binforge)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("plan", parents=[common], help="Print the build order")

    build = sub.add_parser("build", parents=[common], help="Build every unit")
    build.add_argument("--output", "-o", default=None, help="Output directory for bundles")
    build.add_argument(
        "--overwrite",
        action="store_true",
        default=None,
        help="Replace existing bundles instead of failing",
    )
    build.add_argument(
        "--embed-debug-symbols",
        action="store_true",
        default=None,
        help="Embed per-platform dSYMs in each bundle",
    )
    build.add_argument(
        "--include-simulators",
        action="store_true",
        default=None,
        help="Also build simulator slices",
    )
    build.add_argument(
        "--platform",
        action="append",
        choices=[p.value for p in Platform],
        default=None,
        help="Target platform (repeatable; default: what each package declares)",
    )
    build.add_argument(
        "--no-project",
        action="store_true",
        help="Skip writing the project description",
    )

    project = sub.add_parser("project", parents=[common], help="Write the project description")
    project.add_argument("--output", "-o", required=True, help="Destination JSON file")

    return parser


def _options_from_args(args: argparse.Namespace) -> BuildOptions:
    platforms = getattr(args, "platform", None)
    return BuildOptions.from_settings(
        get_settings(),
        mode=args.mode,
        build_configuration=args.configuration,
        framework_type=args.framework_type,
        workspace_dir=args.workspace_dir,
        output_dir=getattr(args, "output", None) if args.command == "build" else None,
        overwrite=getattr(args, "overwrite", None),
        embed_debug_symbols=getattr(args, "embed_debug_symbols", None),
        include_simulators=getattr(args, "include_simulators", None),
        platforms=tuple(platforms) if platforms else None,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point.  Returns the process exit code."""
    args = _build_parser().parse_args(argv)

    level = "DEBUG" if args.verbose else get_settings().LOG_LEVEL.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)

    try:
        options = _options_from_args(args)
        graph = PackageGraph.from_json_file(args.graph)

        if args.command == "plan":
            for unit in plan(graph, options):
                print(f"{unit.package}/{unit.target}\t{unit.kind.value}")
            return 0

        if args.command == "project":
            order = plan(graph, options)
            path = ProjectEmitter(graph, options).write(order, args.output)
            print(path)
            return 0

        result = asyncio.run(
            run_pipeline(graph, options, emit_project=not args.no_project)
        )
        for record in result.records:
            print(f"{record['target']}\t{record['status']}\t{record['bundle_path']}")
        return 0
    except BinforgeError as exc:
        logger.error("%s", exc)
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
