"""binforge error hierarchy.

Errors keep their facts as attributes and in ``detail`` so the CLI and
run records can report them as JSON via ``to_dict()``; ``str(err)`` is
the one-line message.
"""

from __future__ import annotations


class BinforgeError(Exception):
    """Base error for all binforge failures."""

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.detail}

    def __str__(self) -> str:
        return self.message


class ConfigurationError(BinforgeError):
    """Build options failed validation."""


# ---------------------------------------------------------------------------
# Graph integrity
# ---------------------------------------------------------------------------


class GraphIntegrityError(BinforgeError):
    """The package graph violates an invariant the planner relies on."""

    invariant: str = ""

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        merged = {"invariant": self.invariant, **(detail or {})}
        super().__init__(message, detail=merged)


class PackageNotDefined(GraphIntegrityError):
    """The graph has no root package."""

    invariant = "root-package"

    def __init__(self) -> None:
        super().__init__("No packages are defined in this manifest")


class CycleDetected(GraphIntegrityError):
    """The dependency graph over build units contains a cycle."""

    invariant = "acyclic"

    def __init__(self, target: str | None = None) -> None:
        self.target = target
        detail = {"target": target} if target else {}
        super().__init__(
            "A cycle has been detected in the dependencies of the targets",
            detail=detail,
        )


class UnknownTarget(GraphIntegrityError):
    """An edge references a target missing from the graph tables."""

    invariant = "closed-references"

    def __init__(self, target: str, *, referenced_by: str | None = None) -> None:
        self.target = target
        self.referenced_by = referenced_by
        msg = f"Unknown target '{target}'"
        if referenced_by:
            msg += f" (referenced by '{referenced_by}')"
        super().__init__(
            msg, detail={"target": target, "referenced_by": referenced_by}
        )


class UnknownProduct(GraphIntegrityError):
    """An edge references a product missing from the graph tables."""

    invariant = "closed-references"

    def __init__(self, product: str, *, referenced_by: str | None = None) -> None:
        self.product = product
        self.referenced_by = referenced_by
        msg = f"Unknown product '{product}'"
        if referenced_by:
            msg += f" (referenced by '{referenced_by}')"
        super().__init__(
            msg, detail={"product": product, "referenced_by": referenced_by}
        )


class GraphLoadError(GraphIntegrityError):
    """The graph dump could not be parsed into a package graph."""

    invariant = "well-formed-dump"

    def __init__(self, reason: str, *, source: str | None = None) -> None:
        self.reason = reason
        self.source = source
        msg = f"Could not load package graph: {reason}"
        if source:
            msg += f" ({source})"
        super().__init__(msg, detail={"reason": reason, "source": source})


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class UnsupportedTargetKind(BinforgeError):
    """A target kind has no buildable mapping."""

    def __init__(self, kind: str, *, target: str | None = None) -> None:
        self.kind = kind
        self.target = target
        msg = f"Target kind '{kind}' is not supported"
        if target:
            msg += f" (target '{target}')"
        super().__init__(msg, detail={"kind": kind, "target": target})


# ---------------------------------------------------------------------------
# External tools
# ---------------------------------------------------------------------------


class ExternalToolFailure(BinforgeError):
    """An external build process exited unsuccessfully."""

    def __init__(
        self,
        target: str,
        platform: str | None,
        exit_status: int,
        *,
        step: str,
        stderr_tail: str = "",
    ) -> None:
        self.target = target
        self.platform = platform
        self.exit_status = exit_status
        self.step = step
        self.stderr_tail = stderr_tail
        where = f"'{target}'" + (f" for {platform}" if platform else "")
        super().__init__(
            f"{step} failed for {where} with exit status {exit_status}",
            detail={
                "target": target,
                "platform": platform,
                "exit_status": exit_status,
                "step": step,
                "stderr_tail": stderr_tail,
            },
        )


class BuildToolFailure(ExternalToolFailure):
    """The build tool failed to archive or combine a unit."""


class DebugSymbolExtractionFailure(ExternalToolFailure):
    """Debug symbols could not be extracted for a platform slice."""

    def __init__(
        self,
        target: str,
        platform: str | None,
        exit_status: int,
        *,
        stderr_tail: str = "",
    ) -> None:
        super().__init__(
            target,
            platform,
            exit_status,
            step="extract-debug-symbols",
            stderr_tail=stderr_tail,
        )


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


class FilesystemConflict(BinforgeError):
    """A bundle already exists at the output path and overwrite is off."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"'{path}' already exists (pass overwrite to replace it)",
            detail={"path": path},
        )


class FilesystemError(BinforgeError):
    """An OS-level failure while preparing or writing a unit's bundle."""

    def __init__(self, target: str, path: str, *, step: str, reason: str) -> None:
        self.target = target
        self.path = path
        self.step = step
        self.reason = reason
        super().__init__(
            f"{step} failed for '{target}' at '{path}': {reason}",
            detail={"target": target, "path": path, "step": step, "reason": reason},
        )
