from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..config import EngineConfig, VariantConfig
from ..system_tools import is_windows

__all__ = ["LeaVariant", "build_variants"]

# Silences wine's fixme/err chatter without discarding the tool's own stderr
_WINE_ENV = {"WINEDEBUG": "-all"}


@dataclass(frozen=True)
class LeaVariant:
    """Command builder for one version of the Lea compressor/decompressor pair.

    Both binaries take ``<input> <output>`` and signal failure with a
    non-zero exit code.
    """

    config: VariantConfig
    # Prefix such as ["wine"] for running Windows builds elsewhere
    launcher: tuple[str, ...] = field(default=())

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def env(self) -> dict[str, str] | None:
        return dict(_WINE_ENV) if self.launcher else None

    def compress_command(self, input_path: Path, output_path: Path) -> list[str]:
        return [*self.launcher, str(self.config.compressor), str(input_path), str(output_path)]

    def decompress_command(self, input_path: Path, output_path: Path) -> list[str]:
        return [*self.launcher, str(self.config.decompressor), str(input_path), str(output_path)]

    def compressed_path(self, out_dir: Path, filename: str) -> Path:
        return out_dir / self.name / f"{filename}.ppm{self.config.artifact_suffix}"

    def restored_path(self, out_dir: Path, filename: str) -> Path:
        return out_dir / self.name / f"{filename}.ppm"


def build_variants(
    variants: list[VariantConfig], engine_config: EngineConfig | None = None
) -> list[LeaVariant]:
    """Wrap variant configs, adding the wine launcher where the platform needs it."""
    if engine_config is None:
        from ..config import DEFAULT_ENGINE_CONFIG

        engine_config = DEFAULT_ENGINE_CONFIG

    built = []
    for variant in variants:
        launcher: tuple[str, ...] = ()
        if variant.needs_windows_runtime and not is_windows():
            launcher = (engine_config.WINE_PATH,)
        built.append(LeaVariant(config=variant, launcher=launcher))
    return built
