import stat
import sys
import time
from pathlib import Path

import pytest
from PIL import Image

from leabench.config import PathConfig, VariantConfig
from leabench.external_engines.common import CommandResult

# ---------------------------------------------------------------------------
# Fake Lea binaries
# ---------------------------------------------------------------------------
# Small Python scripts standing in for clea/dlea. They take <input> <output>
# like the real tools and are run as real subprocesses.

_FAKE_COMPRESSOR = """\
import sys, zlib
data = open(sys.argv[1], "rb").read()
open(sys.argv[2], "wb").write(b"LEA" + zlib.compress(data, {level}))
"""

_FAKE_DECOMPRESSOR = """\
import sys, zlib
data = open(sys.argv[1], "rb").read()
assert data[:3] == b"LEA"
open(sys.argv[2], "wb").write(zlib.decompress(data[3:]){tail})
"""

_FAILING_TOOL = """\
import sys
sys.stderr.write("lea: unsupported input\\n")
sys.exit(3)
"""


def write_script(path: Path, body: str) -> Path:
    """Write an executable Python script with a shebang for the current interpreter."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def bin_dir(tmp_path):
    return tmp_path / "bin"


@pytest.fixture
def lossless_variant(bin_dir):
    """A variant whose round trip reproduces the input exactly."""
    return VariantConfig(
        name="0.4",
        compressor=write_script(bin_dir / "v0.4" / "clea", _FAKE_COMPRESSOR.format(level=1)),
        decompressor=write_script(bin_dir / "v0.4" / "dlea", _FAKE_DECOMPRESSOR.format(tail="")),
        suffix=".lea4",
    )


@pytest.fixture
def better_variant(bin_dir):
    """A lossless variant with stronger compression."""
    return VariantConfig(
        name="0.5",
        compressor=write_script(bin_dir / "v0.5b" / "clea", _FAKE_COMPRESSOR.format(level=9)),
        decompressor=write_script(bin_dir / "v0.5b" / "dlea", _FAKE_DECOMPRESSOR.format(tail="")),
        suffix=".lea5",
    )


@pytest.fixture
def lossy_variant(bin_dir):
    """A variant whose decompressor appends a byte, so fidelity checks fail."""
    return VariantConfig(
        name="lossy",
        compressor=write_script(bin_dir / "lossy" / "clea", _FAKE_COMPRESSOR.format(level=6)),
        decompressor=write_script(
            bin_dir / "lossy" / "dlea", _FAKE_DECOMPRESSOR.format(tail=' + b"\\x00"')
        ),
    )


@pytest.fixture
def broken_variant(bin_dir):
    """A variant whose compressor always exits non-zero."""
    return VariantConfig(
        name="broken",
        compressor=write_script(bin_dir / "broken" / "clea", _FAILING_TOOL),
        decompressor=write_script(bin_dir / "broken" / "dlea", _FAILING_TOOL),
    )


# ---------------------------------------------------------------------------
# Fake converter
# ---------------------------------------------------------------------------


class PillowConverter:
    """Converter double that writes PPM with Pillow instead of GraphicsMagick."""

    def __init__(self, fail_for: tuple[str, ...] = ()):
        self.fail_for = fail_for
        self.calls: list[Path] = []

    def convert(self, input_path: Path, output_path: Path) -> CommandResult:
        self.calls.append(input_path)
        cmd = ("fake-convert", f"{input_path}[0]", f"ppm:{output_path}")
        start = time.perf_counter()
        if input_path.name in self.fail_for:
            return CommandResult(cmd, 1, "", "convert: improper image header", 0.1)
        with Image.open(input_path) as img:
            img.convert("RGB").save(output_path, format="PPM")
        return CommandResult(cmd, 0, "", "", (time.perf_counter() - start) * 1000)


@pytest.fixture
def converter():
    return PillowConverter()


# ---------------------------------------------------------------------------
# Corpus helpers
# ---------------------------------------------------------------------------


def make_image(path: Path, size=(8, 6), color=(200, 40, 10), fmt: str | None = None) -> Path:
    """Write a small solid-colour image; the format follows the suffix unless *fmt* is given."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path, format=fmt)
    return path


@pytest.fixture
def corpus(tmp_path):
    """A small input tree with a duplicate, a PPM and a zero-byte file."""
    root = tmp_path / "corpus"
    make_image(root / "red.png", color=(255, 0, 0))
    make_image(root / "nested" / "green.png", color=(0, 255, 0))
    make_image(root / "blue.ppm", color=(0, 0, 255))
    (root / "nested" / "copy_of_red.png").write_bytes((root / "red.png").read_bytes())
    (root / "empty.png").write_bytes(b"")
    (root / "notes.txt").write_text("not an image")
    return root


@pytest.fixture
def path_config(tmp_path):
    work = tmp_path / "work"
    return PathConfig(
        WORK_DIR=work,
        REPORT_PATH=tmp_path / "results.json",
        LOGS_DIR=work / "logs",
    )
