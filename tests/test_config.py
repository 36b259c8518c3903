"""Tests for binforge.config — env-var settings and per-run options."""

from pathlib import Path

import pytest

from binforge.config import BuildOptions, Settings, get_settings
from binforge.errors import ConfigurationError
from binforge.planner import RunMode
from binforge.platforms import BuildConfiguration, FrameworkType, Platform


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings()
        assert s.BUILD_CONFIGURATION is BuildConfiguration.RELEASE
        assert s.FRAMEWORK_TYPE is FrameworkType.DYNAMIC
        assert s.OUTPUT_DIR == "XCFrameworks"
        assert s.OVERWRITE is False
        assert s.MAX_PARALLEL_PLATFORMS == 3

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("BINFORGE_OVERWRITE", "1")
        monkeypatch.setenv("BINFORGE_BUILD_CONFIGURATION", "debug")
        s = Settings()
        assert s.OVERWRITE is True
        assert s.BUILD_CONFIGURATION is BuildConfiguration.DEBUG

    def test_dotenv_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text("BINFORGE_FRAMEWORK_TYPE=static\n", encoding="utf-8")
        assert Settings().FRAMEWORK_TYPE is FrameworkType.STATIC

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()


class TestBuildOptions:
    def test_from_default_settings(self) -> None:
        opts = BuildOptions.from_settings(Settings())
        assert opts.mode is RunMode.CREATE_PACKAGE
        assert opts.output_dir == Path("XCFrameworks")
        assert opts.platforms == ()
        assert opts.workspace_dir is None

    def test_platform_list_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("BINFORGE_PLATFORMS", "ios, macos")
        opts = BuildOptions.from_settings(Settings())
        assert opts.platforms == (Platform.IOS, Platform.MACOS)

    def test_overrides_win(self, monkeypatch) -> None:
        monkeypatch.setenv("BINFORGE_OVERWRITE", "false")
        opts = BuildOptions.from_settings(
            Settings(), overwrite=True, mode="prepareDependencies", output_dir="out"
        )
        assert opts.overwrite is True
        assert opts.mode is RunMode.PREPARE_DEPENDENCIES
        assert opts.output_dir == Path("out")

    def test_none_overrides_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("BINFORGE_EMBED_DEBUG_SYMBOLS", "true")
        opts = BuildOptions.from_settings(Settings(), embed_debug_symbols=None)
        assert opts.embed_debug_symbols is True

    def test_invalid_platform(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            BuildOptions.from_settings(Settings(), platforms=("beos",))
        assert exc_info.value.detail["errors"]

    def test_invalid_parallelism(self) -> None:
        with pytest.raises(ConfigurationError):
            BuildOptions.from_settings(Settings(), max_parallel_platforms=0)

    def test_options_are_frozen(self) -> None:
        opts = BuildOptions()
        with pytest.raises(Exception):
            opts.overwrite = True  # type: ignore[misc]
