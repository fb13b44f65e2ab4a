"""Utility helpers for verifying external system tools.

These lightweight checks make sure the image converter, the compatibility
layer and the Lea binaries are present *before* any benchmarking starts, so a
mis-configured environment fails fast instead of half-way through a corpus.
"""

from __future__ import annotations

import os
import re
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from shutil import which
from typing import TYPE_CHECKING

from .error_handling import ToolchainError

if TYPE_CHECKING:
    from .config import EngineConfig, VariantConfig


@dataclass(frozen=True, slots=True)
class ToolInfo:
    """Metadata for an external binary discovered on the system."""

    name: str
    available: bool
    version: str | None = None

    def require(self) -> None:
        """Raise :class:`ToolchainError` if the tool isn't available."""
        if not self.available:
            raise ToolchainError(
                f"Required tool '{self.name}' not found.",
                context={"tool": self.name},
            )


# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------


def _which(cmd: str) -> str | None:
    """Return full path if *cmd* is executable in $PATH, else *None*."""
    return which(cmd)


def _extract_version(output: str, pattern: str) -> str | None:
    match = re.search(pattern, output)
    if match:
        return match.group(1)
    return None


def _run_version_cmd(cmd: list[str], regex: str) -> str | None:
    try:
        completed = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        return None

    return _extract_version(completed.stdout, regex) or _extract_version(
        completed.stderr, regex
    )


def is_windows() -> bool:
    return sys.platform == "win32"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_VERSION_COMMANDS: dict[str, list[str]] = {
    "graphicsmagick": ["version"],
    "imagemagick": ["-version"],
    "wine": ["--version"],
}

_VERSION_PATTERNS: dict[str, str] = {
    "graphicsmagick": r"GraphicsMagick (\S+)",
    "imagemagick": r"ImageMagick (\S+)",
    "wine": r"wine-(\S+)",
}

# Map tool keys to configuration attributes
_CONFIG_MAPPING: dict[str, str] = {
    "graphicsmagick": "GM_PATH",
    "imagemagick": "IMAGEMAGICK_PATH",
    "wine": "WINE_PATH",
}

# Converters in order of preference
CONVERTER_KEYS: tuple[str, ...] = ("graphicsmagick", "imagemagick")


def discover_tool(tool_key: str, engine_config: EngineConfig | None = None) -> ToolInfo:
    """Return *ToolInfo* for *tool_key* using the configured binary path.

    Args:
        tool_key: Tool identifier (graphicsmagick, imagemagick, wine)
        engine_config: EngineConfig instance (uses DEFAULT_ENGINE_CONFIG if None)

    Returns:
        ToolInfo with availability and version information
    """
    if tool_key not in _CONFIG_MAPPING:
        raise ValueError(f"Unknown tool: {tool_key}")

    if engine_config is None:
        from .config import DEFAULT_ENGINE_CONFIG

        engine_config = DEFAULT_ENGINE_CONFIG

    configured = getattr(engine_config, _CONFIG_MAPPING[tool_key])
    resolved = _which(configured)
    if not resolved:
        return ToolInfo(name=configured, available=False, version=None)

    version = _run_version_cmd(
        [configured, *_VERSION_COMMANDS[tool_key]], _VERSION_PATTERNS[tool_key]
    )
    return ToolInfo(name=configured, available=True, version=version)


def find_converter(engine_config: EngineConfig | None = None) -> tuple[str, ToolInfo]:
    """Return ``(tool_key, ToolInfo)`` for the first available image converter.

    Raises:
        ToolchainError: If neither GraphicsMagick nor ImageMagick is installed
    """
    tried = []
    for key in CONVERTER_KEYS:
        info = discover_tool(key, engine_config)
        if info.available:
            return key, info
        tried.append(info.name)

    raise ToolchainError(
        "No image converter found. Install GraphicsMagick "
        "(https://www.graphicsmagick.org/) or ImageMagick.",
        context={"tried": ", ".join(tried)},
    )


def needs_compat_layer(variants: list[VariantConfig]) -> bool:
    """True when Windows builds must run through the compatibility layer."""
    return not is_windows() and any(v.needs_windows_runtime for v in variants)


def check_variant_binaries(variants: list[VariantConfig]) -> list[ToolInfo]:
    """Return one ToolInfo per compressor/decompressor binary."""
    results = []
    for variant in variants:
        for binary in (variant.compressor, variant.decompressor):
            path = Path(binary)
            available = path.is_file() or _which(str(binary)) is not None
            results.append(ToolInfo(name=str(binary), available=available, version=variant.name))
    return results


def verify_environment(
    engine_config: EngineConfig | None = None,
    variants: list[VariantConfig] | None = None,
) -> dict[str, ToolInfo]:
    """Ensure every external dependency of a run is present - raise on failure.

    Args:
        engine_config: EngineConfig instance (uses DEFAULT_ENGINE_CONFIG if None)
        variants: Variants that will be benchmarked

    Returns:
        Mapping of tool keys to ToolInfo instances

    Raises:
        ToolchainError: If the converter, the compatibility layer (when the
            platform needs it) or a variant binary is missing
    """
    variants = variants or []
    results: dict[str, ToolInfo] = {}

    key, converter = find_converter(engine_config)
    results[key] = converter

    if needs_compat_layer(variants):
        wine = discover_tool("wine", engine_config)
        if not wine.available:
            raise ToolchainError(
                "Wine is required to run Windows builds of Lea on this platform. "
                "You can find it here: https://www.winehq.org/",
                context={"tool": wine.name},
            )
        results["wine"] = wine

    for info in check_variant_binaries(variants):
        info.require()
        results[f"lea-{info.version}:{os.path.basename(info.name)}"] = info

    return results


def get_available_tools(engine_config: EngineConfig | None = None) -> dict[str, ToolInfo]:
    """Get availability status for all supported tools without requiring them."""
    return {key: discover_tool(key, engine_config) for key in _CONFIG_MAPPING}
