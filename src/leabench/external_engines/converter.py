from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..config import EngineConfig
from ..system_tools import find_converter
from .common import CommandResult, run_command

__all__ = ["ImageConverter", "converter_from_config"]


@dataclass(frozen=True)
class ImageConverter:
    """Converts arbitrary images to PPM with GraphicsMagick or ImageMagick.

    ``convert`` never raises for tool failures; the normalizer inspects the
    returned :class:`CommandResult`.
    """

    binary: str
    engine: str = "graphicsmagick"
    timeout: float | None = 60.0

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        # [0] selects the first frame of animated or multi-page inputs
        source = f"{input_path}[0]"
        if self.engine == "graphicsmagick":
            return [self.binary, "convert", source, f"ppm:{output_path}"]
        return [self.binary, source, f"ppm:{output_path}"]

    def convert(self, input_path: Path, output_path: Path) -> CommandResult:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        return run_command(self.build_command(input_path, output_path), timeout=self.timeout)


def converter_from_config(
    engine_config: EngineConfig | None = None, timeout: float | None = 60.0
) -> ImageConverter:
    """Build an :class:`ImageConverter` for the first converter found on the system.

    Raises:
        ToolchainError: If no converter is installed
    """
    key, info = find_converter(engine_config)
    return ImageConverter(binary=info.name, engine=key, timeout=timeout)
