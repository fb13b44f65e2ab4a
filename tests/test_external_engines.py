"""Tests for process control and the external tool command builders."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from leabench.config import EngineConfig, VariantConfig
from leabench.external_engines import (
    CommandResult,
    ImageConverter,
    LeaVariant,
    build_variants,
    converter_from_config,
    run_command,
)
from leabench.system_tools import ToolInfo

# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


@pytest.mark.external_tools
class TestRunCommand:
    def test_success(self):
        result = run_command([sys.executable, "-c", "print('hello')"])

        assert result.ok
        assert result.returncode == 0
        assert result.stdout.strip() == "hello"
        assert result.elapsed_ms > 0
        assert result.describe_failure() == ""

    def test_non_zero_exit(self):
        result = run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad input\\n'); sys.exit(4)"]
        )

        assert not result.ok
        assert result.returncode == 4
        assert result.describe_failure() == "exit 4: bad input"

    def test_timeout(self):
        result = run_command([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.3)

        assert not result.ok
        assert result.timed_out
        assert result.returncode is None
        assert result.elapsed_ms < 5000
        assert "timed out" in result.describe_failure()

    def test_missing_binary(self, tmp_path):
        result = run_command([str(tmp_path / "does-not-exist")])

        assert not result.ok
        assert result.launch_error
        assert result.describe_failure().startswith("could not start")

    def test_env_is_layered(self):
        result = run_command(
            [sys.executable, "-c", "import os; print(os.environ['WINEDEBUG'], 'PATH' in os.environ)"],
            env={"WINEDEBUG": "-all"},
        )

        assert result.stdout.split() == ["-all", "True"]


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------


@pytest.mark.fast
class TestImageConverter:
    def test_graphicsmagick_command(self):
        converter = ImageConverter(binary="gm", engine="graphicsmagick")

        cmd = converter.build_command(Path("in.gif"), Path("out.ppm"))

        assert cmd == ["gm", "convert", "in.gif[0]", "ppm:out.ppm"]

    def test_imagemagick_command(self):
        converter = ImageConverter(binary="magick", engine="imagemagick")

        cmd = converter.build_command(Path("in.gif"), Path("out.ppm"))

        assert cmd == ["magick", "in.gif[0]", "ppm:out.ppm"]

    def test_convert_passes_timeout(self, tmp_path):
        converter = ImageConverter(binary="gm", timeout=12.0)
        expected = CommandResult(("gm",), 0, "", "", 1.0)

        with patch("leabench.external_engines.converter.run_command", return_value=expected) as mock_run:
            result = converter.convert(tmp_path / "in.png", tmp_path / "ppm" / "out.ppm")

        assert result is expected
        assert mock_run.call_args.kwargs["timeout"] == 12.0
        assert (tmp_path / "ppm").is_dir()

    @patch("leabench.external_engines.converter.find_converter")
    def test_from_config_uses_discovered_tool(self, mock_find):
        mock_find.return_value = ("imagemagick", ToolInfo(name="magick", available=True))

        converter = converter_from_config(EngineConfig(), timeout=5.0)

        assert converter == ImageConverter(binary="magick", engine="imagemagick", timeout=5.0)


# ---------------------------------------------------------------------------
# Lea variants
# ---------------------------------------------------------------------------


@pytest.mark.fast
class TestLeaVariant:
    def test_commands(self):
        variant = LeaVariant(VariantConfig("0.4", Path("bin/clea"), Path("bin/dlea")))

        assert variant.compress_command(Path("a.ppm"), Path("a.lea")) == [
            str(Path("bin/clea")), "a.ppm", "a.lea",
        ]
        assert variant.decompress_command(Path("a.lea"), Path("a.ppm")) == [
            str(Path("bin/dlea")), "a.lea", "a.ppm",
        ]
        assert variant.env is None

    def test_launcher_prefix(self):
        variant = LeaVariant(
            VariantConfig("0.4", Path("clea.exe"), Path("dlea.exe")), launcher=("wine",)
        )

        assert variant.compress_command(Path("a"), Path("b"))[:2] == ["wine", "clea.exe"]
        assert variant.env == {"WINEDEBUG": "-all"}

    def test_paths_are_per_variant(self, tmp_path):
        variant = LeaVariant(VariantConfig("0.5", Path("c"), Path("d"), suffix=".lea5"))

        assert variant.compressed_path(tmp_path, "a.png") == tmp_path / "0.5" / "a.png.ppm.lea5"
        assert variant.restored_path(tmp_path, "a.png") == tmp_path / "0.5" / "a.png.ppm"

    @patch("leabench.external_engines.lea.is_windows", return_value=False)
    def test_build_variants_adds_wine_for_exe(self, _mock_windows):
        configs = [
            VariantConfig("0.4", Path("clea.exe"), Path("dlea.exe")),
            VariantConfig("native", Path("clea"), Path("dlea")),
        ]

        wine, native = build_variants(configs, EngineConfig(WINE_PATH="wine64"))

        assert wine.launcher == ("wine64",)
        assert native.launcher == ()

    @patch("leabench.external_engines.lea.is_windows", return_value=True)
    def test_build_variants_no_wine_on_windows(self, _mock_windows):
        (variant,) = build_variants([VariantConfig("0.4", Path("clea.exe"), Path("dlea.exe"))])

        assert variant.launcher == ()
