"""Configuration settings for LeaBench."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from .error_handling import ConfigurationError

# Image formats accepted by the collector (lower-case suffixes)
SUPPORTED_EXTENSIONS: tuple[str, ...] = (
    ".jpg", ".jpeg", ".png", ".gif", ".bmp",
    ".tiff", ".tif", ".webp", ".svg", ".psd", ".ai", ".eps",
    ".ppm", ".pgm", ".pbm", ".pnm", ".pam", ".pfm", ".pcx", ".xwd",
)

# Formats that are already the canonical raster and only need copying
CANONICAL_EXTENSIONS: tuple[str, ...] = (".ppm",)


@dataclass
class BenchmarkConfig:
    """Configuration for the timed benchmark runs."""

    # Invocations per operation; the minimum wall-clock time is reported
    REPEATS: int = 3

    # Hard limit for a single compressor/decompressor/converter invocation
    TIMEOUT_SECONDS: float = 60.0

    # Worker threads for untimed stages (hashing, normalization). 1 = sequential
    WORKERS: int = 1

    # Hash the compressed artifact after every run and fail on drift
    VERIFY_DETERMINISM: bool = True

    # Carry over records from a previous report with the same variant set
    RESUME: bool = True

    SUPPORTED_EXTENSIONS: tuple[str, ...] = SUPPORTED_EXTENSIONS
    CANONICAL_EXTENSIONS: tuple[str, ...] = CANONICAL_EXTENSIONS

    def __post_init__(self) -> None:
        if self.REPEATS < 1:
            raise ConfigurationError(f"REPEATS must be at least 1, got {self.REPEATS}")

        if self.TIMEOUT_SECONDS <= 0:
            raise ConfigurationError(
                f"TIMEOUT_SECONDS must be positive, got {self.TIMEOUT_SECONDS}"
            )

        if self.WORKERS < 1:
            raise ConfigurationError(f"WORKERS must be at least 1, got {self.WORKERS}")

        # Normalise suffixes so callers can pass "PNG" or ".png"
        self.SUPPORTED_EXTENSIONS = tuple(_normalise_suffix(s) for s in self.SUPPORTED_EXTENSIONS)
        self.CANONICAL_EXTENSIONS = tuple(_normalise_suffix(s) for s in self.CANONICAL_EXTENSIONS)


def _normalise_suffix(suffix: str) -> str:
    suffix = suffix.lower()
    return suffix if suffix.startswith(".") else f".{suffix}"


@dataclass
class PathConfig:
    """Configuration for the run-owned working directories."""

    WORK_DIR: Path = Path("data")
    REPORT_PATH: Path = Path("results.json")
    LOGS_DIR: Path = Path("logs")

    @property
    def IMG_DIR(self) -> Path:
        """Testbed copies of the unique input files."""
        return self.WORK_DIR / "img"

    @property
    def PPM_DIR(self) -> Path:
        """Normalized (canonical raster) artifacts."""
        return self.WORK_DIR / "tmp" / "ppm"

    @property
    def COMPRESSED_DIR(self) -> Path:
        return self.WORK_DIR / "tmp" / "compressed"

    @property
    def RESTORED_DIR(self) -> Path:
        return self.WORK_DIR / "tmp" / "restored"

    @property
    def LOCK_PATH(self) -> Path:
        return self.WORK_DIR / ".leabench.lock"

    def all_dirs(self) -> list[Path]:
        return [
            self.WORK_DIR,
            self.IMG_DIR,
            self.PPM_DIR,
            self.COMPRESSED_DIR,
            self.RESTORED_DIR,
            self.LOGS_DIR,
        ]


@dataclass
class EngineConfig:
    """Configuration for external tool paths with environment variable overrides."""

    # GraphicsMagick binary used for normalization.
    # Override with: LEABENCH_GM_PATH
    GM_PATH: str = "gm"

    # ImageMagick binary, used only when GraphicsMagick is not installed.
    # Override with: LEABENCH_IMAGEMAGICK_PATH
    IMAGEMAGICK_PATH: str = "magick"

    # Compatibility layer for running Windows builds of Lea on other platforms.
    # Override with: LEABENCH_WINE_PATH
    WINE_PATH: str = "wine"

    # Directory holding one sub-directory of Lea binaries per version.
    # Override with: LEABENCH_BIN_DIR
    BIN_DIR: Path = Path("bin")

    def __post_init__(self) -> None:
        """Apply environment variable overrides after initialization."""
        env_overrides = {
            "GM_PATH": "LEABENCH_GM_PATH",
            "IMAGEMAGICK_PATH": "LEABENCH_IMAGEMAGICK_PATH",
            "WINE_PATH": "LEABENCH_WINE_PATH",
            "BIN_DIR": "LEABENCH_BIN_DIR",
        }

        for attr_name, env_var_name in env_overrides.items():
            env_value = os.getenv(env_var_name)
            if env_value:
                setattr(self, attr_name, env_value)

        self.BIN_DIR = Path(self.BIN_DIR)


@dataclass(frozen=True)
class VariantConfig:
    """One version of the compressor/decompressor pair under test."""

    name: str
    compressor: Path
    decompressor: Path
    # Extension for the compressed artifact, e.g. ".lea4"
    suffix: str = field(default="")

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Variant name must not be empty")
        if any(c in self.name for c in "/\\"):
            raise ConfigurationError(f"Variant name must not contain path separators: {self.name!r}")

    @property
    def artifact_suffix(self) -> str:
        return self.suffix or f".lea{self.name.replace('.', '')}"

    @property
    def needs_windows_runtime(self) -> bool:
        """True when either binary is a Windows executable."""
        return any(
            Path(binary).suffix.lower() == ".exe"
            for binary in (self.compressor, self.decompressor)
        )


def default_variants(bin_dir: Path | None = None) -> list[VariantConfig]:
    """Return the baseline (0.4) and candidate (0.5) Lea builds.

    The first variant is the baseline for every B - A comparison.
    """
    if bin_dir is None:
        bin_dir = DEFAULT_ENGINE_CONFIG.BIN_DIR

    return [
        VariantConfig(
            name="0.4",
            compressor=bin_dir / "v0.4" / "clea.exe",
            decompressor=bin_dir / "v0.4" / "dlea.exe",
            suffix=".lea4",
        ),
        VariantConfig(
            name="0.5",
            compressor=bin_dir / "v0.5b" / "clea.exe",
            decompressor=bin_dir / "v0.5b" / "dlea.exe",
            suffix=".lea5",
        ),
    ]


def parse_variant_spec(spec: str) -> VariantConfig:
    """Parse ``NAME=COMPRESSOR,DECOMPRESSOR`` into a :class:`VariantConfig`."""
    name, sep, binaries = spec.partition("=")
    if not sep:
        raise ConfigurationError(f"Variant must look like NAME=COMPRESSOR,DECOMPRESSOR: {spec!r}")

    parts = [p.strip() for p in binaries.split(",")]
    if len(parts) != 2 or not all(parts):
        raise ConfigurationError(f"Variant needs exactly two binaries: {spec!r}")

    return VariantConfig(
        name=name.strip(),
        compressor=Path(parts[0]),
        decompressor=Path(parts[1]),
    )


# Default configuration instances
DEFAULT_BENCHMARK_CONFIG = BenchmarkConfig()
DEFAULT_PATH_CONFIG = PathConfig()
DEFAULT_ENGINE_CONFIG = EngineConfig()
