"""Configuration loaded from environment variables.

Uses ``pydantic-settings`` for env-var loading, type coercion and ``.env``
file support.  ``Settings`` only supplies defaults: the values a run
actually uses are frozen into a :class:`BuildOptions` and passed
explicitly to the orchestrator, never read back from module state.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from binforge.errors import ConfigurationError
from binforge.planner import RunMode
from binforge.platforms import BuildConfiguration, FrameworkType, Platform

VERSION = "0.1.0"


class Settings(BaseSettings):
    """Settings sourced from ``BINFORGE_*`` environment variables / ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="BINFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    BUILD_CONFIGURATION: BuildConfiguration = BuildConfiguration.RELEASE
    FRAMEWORK_TYPE: FrameworkType = FrameworkType.DYNAMIC
    OUTPUT_DIR: str = "XCFrameworks"
    OVERWRITE: bool = False
    EMBED_DEBUG_SYMBOLS: bool = False
    INCLUDE_SIMULATORS: bool = False

    # Comma-separated platform override, e.g. "ios,macos".  Blank means
    # "use what each package declares".
    PLATFORMS: str = ""

    BUILD_TOOL: str = "xcodebuild"
    DEBUG_SYMBOL_TOOL: str = "dsymutil"
    # Root of the build-tool working directory.  Blank means
    # "<package>/.build/binforge".
    WORKSPACE_DIR: str = ""

    BUILD_TIMEOUT_S: int = Field(default=3600, ge=1)
    MAX_PARALLEL_PLATFORMS: int = Field(default=3, ge=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings instance (cleared in tests via ``cache_clear``)."""
    return Settings()


class BuildOptions(BaseModel):
    """Options for a single run, threaded explicitly through every stage."""

    model_config = ConfigDict(frozen=True)

    mode: RunMode = RunMode.CREATE_PACKAGE
    build_configuration: BuildConfiguration = BuildConfiguration.RELEASE
    framework_type: FrameworkType = FrameworkType.DYNAMIC
    output_dir: Path = Path("XCFrameworks")
    overwrite: bool = False
    embed_debug_symbols: bool = False
    include_simulators: bool = False
    platforms: tuple[Platform, ...] = ()
    build_tool: str = "xcodebuild"
    debug_symbol_tool: str = "dsymutil"
    workspace_dir: Path | None = None
    build_timeout_s: int = Field(default=3600, ge=1)
    max_parallel_platforms: int = Field(default=3, ge=1)

    @field_validator("platforms", mode="before")
    @classmethod
    def _split_platforms(cls, value: object) -> object:
        if isinstance(value, str):
            return tuple(p.strip() for p in value.split(",") if p.strip())
        return value

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: object) -> "BuildOptions":
        """Build options from *settings*, with non-``None`` *overrides* on top.

        Raises :class:`ConfigurationError` if the merged values are invalid.
        """
        values: dict[str, object] = {
            "build_configuration": settings.BUILD_CONFIGURATION,
            "framework_type": settings.FRAMEWORK_TYPE,
            "output_dir": settings.OUTPUT_DIR,
            "overwrite": settings.OVERWRITE,
            "embed_debug_symbols": settings.EMBED_DEBUG_SYMBOLS,
            "include_simulators": settings.INCLUDE_SIMULATORS,
            "platforms": settings.PLATFORMS,
            "build_tool": settings.BUILD_TOOL,
            "debug_symbol_tool": settings.DEBUG_SYMBOL_TOOL,
            "workspace_dir": settings.WORKSPACE_DIR or None,
            "build_timeout_s": settings.BUILD_TIMEOUT_S,
            "max_parallel_platforms": settings.MAX_PARALLEL_PLATFORMS,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid build options: {exc.error_count()} error(s)",
                detail={"errors": [e["msg"] for e in exc.errors()]},
            ) from exc


__all__ = ["BuildOptions", "Settings", "VERSION", "get_settings"]
