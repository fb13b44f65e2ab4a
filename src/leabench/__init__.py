"""LeaBench - benchmark harness comparing versions of the Lea image compressor."""

__version__: str = "0.1.0"
__author__: str = "LeaBench Team"
__email__: str = "team@leabench.example"

# Public re-exports for convenience ---------------------------------------------------

# NOTE: keep imports lightweight; the CLI and tests import submodules directly.

from .config import (
    BenchmarkConfig,
    EngineConfig,
    PathConfig,
    VariantConfig,
    default_variants,
)
from .error_handling import (
    ConversionError,
    LeaBenchError,
    NonDeterministicOutputError,
    RunLockedError,
    ToolchainError,
    ToolInvocationError,
)
from .records import FileRecord, Stage, VariantComparison, VariantResult
from .system_tools import ToolInfo, verify_environment

__all__ = [
    "BenchmarkConfig",
    "ConversionError",
    "EngineConfig",
    "FileRecord",
    "LeaBenchError",
    "NonDeterministicOutputError",
    "PathConfig",
    "RunLockedError",
    "Stage",
    "ToolInfo",
    "ToolInvocationError",
    "ToolchainError",
    "VariantComparison",
    "VariantConfig",
    "VariantResult",
    "default_variants",
    "verify_environment",
]
