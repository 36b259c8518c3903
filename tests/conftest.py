"""Shared test fixtures — reduces boilerplate across test modules.

Provides:
- ``make_graph`` — build a ``PackageGraph`` from compact package dicts
- ``FakeExecutor`` / ``fake_executor`` — records build-tool calls, fails on
  demand and writes the combined bundle like the real tool would
- ``clean_settings`` — autouse fixture isolating ``BINFORGE_*`` settings
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

from binforge.config import get_settings
from binforge.graph import PackageGraph
from binforge.runner import RunResult


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------


def pytest_configure(config):
    """Register custom markers.

    Tests that spawn real subprocesses are decorated with
    ``@pytest.mark.integration``; run ``-m 'not integration'`` to skip them.
    """
    config.addinivalue_line(
        "markers",
        "integration: tests that spawn real subprocesses",
    )


# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Drop ``BINFORGE_*`` env vars and any cached ``Settings``.

    Runs from *tmp_path* so a developer's ``.env`` is never picked up.
    """
    for key in list(os.environ):
        if key.startswith("BINFORGE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Graph factory
# ---------------------------------------------------------------------------


def make_graph(*packages: dict[str, Any], root: str | None = "app") -> PackageGraph:
    """Build a graph from compact package dicts.

    Targets may be given as ``"Name"`` (a library with no dependencies) or
    as full target dicts.
    """
    normalised = []
    for pkg in packages:
        pkg = dict(pkg)
        pkg["targets"] = [
            {"name": t, "kind": "library"} if isinstance(t, str) else t
            for t in pkg.get("targets", [])
        ]
        normalised.append(pkg)
    data: dict[str, Any] = {"packages": normalised}
    if root is not None:
        data["root"] = root
    return PackageGraph.from_dict(data)


def lib(name: str, *deps: dict[str, str], kind: str = "library", **extra: Any) -> dict[str, Any]:
    """Target dict helper: ``lib("App", dep("Core"), kind="executable")``."""
    return {"name": name, "kind": kind, "dependencies": list(deps), **extra}


def dep(target: str, package: str | None = None) -> dict[str, str]:
    d = {"target": target}
    if package:
        d["package"] = package
    return d


def product_dep(product: str, package: str) -> dict[str, str]:
    return {"product": product, "package": package}


# ---------------------------------------------------------------------------
# Fake executor
# ---------------------------------------------------------------------------


class FakeExecutor:
    """Stands in for real build-tool subprocesses.

    * every call is recorded in ``calls``
    * ``fail_when(predicate, exit_code)`` makes matching calls fail
    * a successful ``-create-xcframework`` call writes the ``-output`` dir
    * ``peak`` records the highest number of overlapping calls
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[str | None] = []
        self._failures: list[tuple[Callable[[list[str]], bool], int]] = []
        self.active = 0
        self.peak = 0

    def fail_when(self, predicate: Callable[[list[str]], bool], exit_code: int = 65) -> None:
        self._failures.append((predicate, exit_code))

    def calls_with(self, token: str) -> list[list[str]]:
        return [c for c in self.calls if token in c]

    async def execute(self, argv: Sequence[str], *, cwd: str | None = None) -> RunResult:
        args = [str(a) for a in argv]
        self.calls.append(args)
        self.cwds.append(cwd)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
        finally:
            self.active -= 1

        exit_code = 0
        for predicate, code in self._failures:
            if predicate(args):
                exit_code = code
                break

        if exit_code == 0 and "-create-xcframework" in args:
            out = Path(args[args.index("-output") + 1])
            out.mkdir(parents=True)
            (out / "Info.plist").write_text("<plist/>\n", encoding="utf-8")

        return RunResult(
            exit_code=exit_code,
            stdout="",
            stderr="error: build failed\n" if exit_code else "",
            command=" ".join(args),
        )


def sdk_is(sdk: str) -> Callable[[list[str]], bool]:
    """Predicate: an ``archive`` call for the given ``-sdk``."""
    def _match(args: list[str]) -> bool:
        return "archive" in args and "-sdk" in args and args[args.index("-sdk") + 1] == sdk
    return _match


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()
