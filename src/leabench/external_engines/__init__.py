from .common import CommandResult, run_command
from .converter import ImageConverter, converter_from_config
from .lea import LeaVariant, build_variants

__all__ = [
    # Process control
    "CommandResult",
    "run_command",
    # Image conversion
    "ImageConverter",
    "converter_from_config",
    # Lea
    "LeaVariant",
    "build_variants",
]
