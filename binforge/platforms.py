"""Platform vocabulary — SDKs, simulator variants and build configurations."""

from __future__ import annotations

import enum


class BuildConfiguration(str, enum.Enum):
    """Compilation configuration passed to the build tool."""

    DEBUG = "debug"
    RELEASE = "release"

    @property
    def settings_value(self) -> str:
        return self.value.capitalize()


class FrameworkType(str, enum.Enum):
    """Linkage of the produced framework slices."""

    DYNAMIC = "dynamic"
    STATIC = "static"


class Platform(str, enum.Enum):
    """A build destination SDK.

    Device platforms may be expanded with their simulator counterpart
    via :meth:`expand_for_simulators`.
    """

    MACOS = "macos"
    IOS = "ios"
    IOS_SIMULATOR = "ios-simulator"
    TVOS = "tvos"
    TVOS_SIMULATOR = "tvos-simulator"
    WATCHOS = "watchos"
    WATCHOS_SIMULATOR = "watchos-simulator"
    VISIONOS = "visionos"
    VISIONOS_SIMULATOR = "visionos-simulator"

    @classmethod
    def from_platform_name(cls, name: str) -> "Platform | None":
        """Map a manifest platform name (``ios``, ``macOS``...) to a device SDK.

        Returns ``None`` for platforms binforge cannot build for
        (e.g. ``linux``).
        """
        return _PLATFORM_NAMES.get(name.strip().lower())

    @property
    def settings_value(self) -> str:
        """SDK name understood by the build tool (``-sdk`` argument)."""
        return _SDK_NAMES[self]

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def destination(self) -> str:
        """Generic ``-destination`` specifier for archive builds."""
        return f"generic/platform={_DESTINATION_NAMES[self]}"

    @property
    def is_simulator(self) -> bool:
        return self.value.endswith("-simulator")

    def expand_for_simulators(self) -> list["Platform"]:
        """Return this platform plus its simulator variant, if any."""
        simulator = _SIMULATORS.get(self)
        if simulator is None:
            return [self]
        return [self, simulator]


_PLATFORM_NAMES: dict[str, Platform] = {
    "macos": Platform.MACOS,
    "maccatalyst": Platform.MACOS,
    "ios": Platform.IOS,
    "tvos": Platform.TVOS,
    "watchos": Platform.WATCHOS,
    "visionos": Platform.VISIONOS,
}

_SDK_NAMES: dict[Platform, str] = {
    Platform.MACOS: "macosx",
    Platform.IOS: "iphoneos",
    Platform.IOS_SIMULATOR: "iphonesimulator",
    Platform.TVOS: "appletvos",
    Platform.TVOS_SIMULATOR: "appletvsimulator",
    Platform.WATCHOS: "watchos",
    Platform.WATCHOS_SIMULATOR: "watchsimulator",
    Platform.VISIONOS: "xros",
    Platform.VISIONOS_SIMULATOR: "xrsimulator",
}

_DISPLAY_NAMES: dict[Platform, str] = {
    Platform.MACOS: "macOS",
    Platform.IOS: "iOS",
    Platform.IOS_SIMULATOR: "iPhone Simulator",
    Platform.TVOS: "tvOS",
    Platform.TVOS_SIMULATOR: "TV Simulator",
    Platform.WATCHOS: "watchOS",
    Platform.WATCHOS_SIMULATOR: "Watch Simulator",
    Platform.VISIONOS: "visionOS",
    Platform.VISIONOS_SIMULATOR: "visionOS Simulator",
}

_DESTINATION_NAMES: dict[Platform, str] = {
    Platform.MACOS: "macOS",
    Platform.IOS: "iOS",
    Platform.IOS_SIMULATOR: "iOS Simulator",
    Platform.TVOS: "tvOS",
    Platform.TVOS_SIMULATOR: "tvOS Simulator",
    Platform.WATCHOS: "watchOS",
    Platform.WATCHOS_SIMULATOR: "watchOS Simulator",
    Platform.VISIONOS: "visionOS",
    Platform.VISIONOS_SIMULATOR: "visionOS Simulator",
}

_SIMULATORS: dict[Platform, Platform] = {
    Platform.IOS: Platform.IOS_SIMULATOR,
    Platform.TVOS: Platform.TVOS_SIMULATOR,
    Platform.WATCHOS: Platform.WATCHOS_SIMULATOR,
    Platform.VISIONOS: Platform.VISIONOS_SIMULATOR,
}


def expand_platforms(
    platforms: list[Platform], *, include_simulators: bool
) -> list[Platform]:
    """Deduplicate *platforms*, optionally adding simulator variants.

    Declaration order is kept so build logs and bundle slices are stable.
    """
    result: list[Platform] = []
    for platform in platforms:
        expanded = (
            platform.expand_for_simulators() if include_simulators else [platform]
        )
        for p in expanded:
            if p not in result:
                result.append(p)
    return result


def products_directory_name(configuration: BuildConfiguration, platform: Platform) -> str:
    """Intermediate directory name in the products dir.

    e.g. ``Debug`` for macOS, ``Debug-iphoneos`` for everything else.
    """
    if platform is Platform.MACOS:
        return configuration.settings_value
    return f"{configuration.settings_value}-{platform.settings_value}"


__all__ = [
    "BuildConfiguration",
    "FrameworkType",
    "Platform",
    "expand_platforms",
    "products_directory_name",
]
