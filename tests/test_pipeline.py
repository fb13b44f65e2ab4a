"""End-to-end tests for the benchmark pipeline using fake Lea binaries."""

import json
import signal
import sys
from unittest.mock import Mock

import pytest

from leabench.config import BenchmarkConfig
from leabench.error_handling import RunLockedError
from leabench.io import run_lock
from leabench.pipeline import BenchmarkPipeline
from leabench.records import Stage
from leabench.report import load_report
from leabench.runner import BenchmarkRunner
from conftest import PillowConverter, make_image

pytestmark = [
    pytest.mark.external_tools,
    pytest.mark.skipif(sys.platform == "win32", reason="fake Lea binaries are shebang scripts"),
]


def _pipeline(variants, path_config, converter=None, progress=None, runner=None, **bench):
    bench.setdefault("REPEATS", 1)
    return BenchmarkPipeline(
        variants=variants,
        converter=converter or PillowConverter(),
        benchmark_config=BenchmarkConfig(**bench),
        path_config=path_config,
        runner=runner,
        progress=progress,
        install_signal_handlers=False,
    )


def _report(path_config):
    return json.loads(path_config.REPORT_PATH.read_text())


class TestPipelineConstruction:
    def test_requires_variants(self, path_config):
        with pytest.raises(ValueError):
            _pipeline([], path_config)

    def test_rejects_duplicate_names(self, lossless_variant, path_config):
        with pytest.raises(ValueError, match="unique"):
            _pipeline([lossless_variant, lossless_variant], path_config)


class TestFullRun:
    def test_benchmarks_every_unique_file(self, corpus, lossless_variant, better_variant, path_config):
        pipeline = _pipeline([lossless_variant, better_variant], path_config, REPEATS=2)

        summary = pipeline.run(corpus)

        assert summary.discovered == 4
        assert summary.unique == 3
        assert summary.duplicates == 1
        assert summary.benchmarked == 3
        assert summary.identical == 3
        assert summary.failures == []
        assert summary.status == "completed"

        report = _report(path_config)
        assert report["variants"] == ["0.4", "0.5"]
        assert len(report["records"]) == 3
        for record in report["records"]:
            assert record["status"] == "aggregated"
            assert record["is_identical"] is True
            sizes = {name: v["compressed_size"] for name, v in record["variants"].items()}
            (comparison,) = record["comparisons"]
            assert comparison["size_diff"] == sizes["0.5"] - sizes["0.4"]
            assert len(record["variants"]["0.4"]["compress_samples_ms"]) == 2

    def test_ppm_input_is_not_converted(self, corpus, lossless_variant, path_config):
        converter = PillowConverter()

        _pipeline([lossless_variant], path_config, converter=converter).run(corpus)

        assert all(p.suffix == ".png" for p in converter.calls)
        blue = next(r for r in _report(path_config)["records"] if r["filename"] == "blue.ppm")
        assert blue["normalized_sha256"] == blue["original_sha256"]

    def test_testbed_holds_unique_files(self, corpus, lossless_variant, path_config):
        _pipeline([lossless_variant], path_config).run(corpus)

        names = sorted(p.name for p in path_config.IMG_DIR.iterdir())
        assert names == ["blue.ppm", "green.png", "red.png"]

    def test_name_clash_resolved(self, tmp_path, lossless_variant, path_config):
        root = tmp_path / "clash"
        make_image(root / "a" / "photo.png", color=(1, 2, 3))
        make_image(root / "b" / "photo.png", color=(4, 5, 6))

        summary = _pipeline([lossless_variant], path_config).run(root)

        assert summary.benchmarked == 2
        names = sorted(r["filename"] for r in _report(path_config)["records"])
        assert names[0] != names[1]
        assert "photo.png" in names

    def test_parallel_normalization(self, corpus, lossless_variant, path_config):
        summary = _pipeline([lossless_variant], path_config, WORKERS=3).run(corpus)

        assert summary.benchmarked == 3

    def test_csv_export(self, corpus, lossless_variant, better_variant, path_config, tmp_path):
        csv_path = tmp_path / "results.csv"

        summary = _pipeline([lossless_variant, better_variant], path_config).run(corpus, csv_path=csv_path)

        assert summary.csv_path == csv_path
        lines = csv_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 4
        assert "c_size_diff" in lines[0]

    def test_empty_corpus(self, tmp_path, lossless_variant, path_config):
        (tmp_path / "empty").mkdir()

        summary = _pipeline([lossless_variant], path_config).run(tmp_path / "empty")

        assert summary.status == "no_files"
        assert _report(path_config)["records"] == []

    def test_missing_root(self, tmp_path, lossless_variant, path_config):
        with pytest.raises(OSError):
            _pipeline([lossless_variant], path_config).run(tmp_path / "missing")


class TestFailureIsolation:
    def test_conversion_failure_excludes_only_that_file(self, corpus, lossless_variant, path_config):
        converter = PillowConverter(fail_for=("green.png",))

        summary = _pipeline([lossless_variant], path_config, converter=converter).run(corpus)

        assert summary.benchmarked == 2
        assert [(f.filename, f.stage) for f in summary.failures] == [("green.png", "normalize")]
        records = {r["filename"]: r for r in _report(path_config)["records"]}
        assert records["green.png"]["status"] == "failed"
        assert records["green.png"]["variants"]["0.4"]["compressed_size"] is None
        assert records["red.png"]["status"] == "aggregated"

    def test_broken_variant_does_not_stop_run(self, corpus, lossless_variant, broken_variant, path_config):
        summary = _pipeline([lossless_variant, broken_variant], path_config).run(corpus)

        assert summary.benchmarked == 3
        assert summary.identical == 0
        assert {f.stage for f in summary.failures} == {"benchmark [broken]"}
        for record in _report(path_config)["records"]:
            assert record["variants"]["0.4"]["is_identical"] is True
            assert record["variants"]["broken"]["compress_time_ms"] is None
            assert "exit 3" in record["variants"]["broken"]["error"]
            assert record["comparisons"][0]["size_diff"] is None

    def test_lossy_variant_recorded(self, corpus, lossless_variant, lossy_variant, path_config):
        summary = _pipeline([lossless_variant, lossy_variant], path_config).run(corpus)

        assert summary.benchmarked == 3
        assert summary.identical == 0
        assert summary.failures == []


class TestInterruption:
    def test_report_contains_finished_files_only(self, corpus, lossless_variant, path_config):
        pipeline = None

        def stop_after_first(stage, done, total, filename):
            if stage == "benchmark" and done == 1:
                pipeline.request_shutdown()

        pipeline = _pipeline([lossless_variant], path_config, progress=stop_after_first)
        summary = pipeline.run(corpus)

        assert summary.interrupted
        assert summary.status == "interrupted"
        assert summary.benchmarked == 1
        records = _report(path_config)["records"]
        assert len(records) == 1
        assert records[0]["status"] == "aggregated"

    def test_interrupted_run_resumes(self, corpus, lossless_variant, path_config):
        first = None

        def stop_after_first(stage, done, total, filename):
            if stage == "benchmark" and done == 1:
                first.request_shutdown()

        first = _pipeline([lossless_variant], path_config, progress=stop_after_first)
        first.run(corpus)

        summary = _pipeline([lossless_variant], path_config).run(corpus)

        assert summary.resumed == 1
        assert summary.benchmarked == 2
        assert len(_report(path_config)["records"]) == 3

    def test_record_stopped_between_variants_is_not_reported(
        self, corpus, lossless_variant, better_variant, path_config
    ):
        pipeline = None
        real_runner = BenchmarkRunner(repeats=1)

        def stop_during_second_variant(record, variant, compressed_dir, restored_dir):
            result = real_runner.benchmark_variant(record, variant, compressed_dir, restored_dir)
            if variant.name == better_variant.name:
                # The binary was killed by the signal that requested the stop
                pipeline.request_shutdown()
                result.error = "all 1 decompress attempts failed (exit -2)"
                result.is_identical = False
            return result

        runner = Mock(spec=BenchmarkRunner)
        runner.benchmark_variant.side_effect = stop_during_second_variant
        pipeline = _pipeline([lossless_variant, better_variant], path_config, runner=runner)

        summary = pipeline.run(corpus)

        assert summary.interrupted
        assert summary.benchmarked == 0
        assert not [f for f in summary.failures if f.stage.startswith("benchmark")]
        assert _report(path_config)["records"] == []

        resumed = _pipeline([lossless_variant, better_variant], path_config).run(corpus)

        assert resumed.resumed == 0
        assert resumed.benchmarked == 3
        assert resumed.identical == 3

    def test_signal_handlers_restored_after_run(self, corpus, lossless_variant, path_config):
        before = {s: signal.getsignal(s) for s in (signal.SIGINT, signal.SIGTERM)}
        during = {}

        def capture(stage, done, total, filename):
            during[stage] = signal.getsignal(signal.SIGINT)

        pipeline = BenchmarkPipeline(
            variants=[lossless_variant],
            converter=PillowConverter(),
            benchmark_config=BenchmarkConfig(REPEATS=1),
            path_config=path_config,
            progress=capture,
        )
        pipeline.run(corpus)

        assert during["benchmark"] is not before[signal.SIGINT]
        assert {s: signal.getsignal(s) for s in before} == before

    def test_signal_handlers_restored_after_failure(self, tmp_path, lossless_variant, path_config):
        before = signal.getsignal(signal.SIGINT)
        pipeline = BenchmarkPipeline(
            variants=[lossless_variant],
            converter=PillowConverter(),
            path_config=path_config,
        )

        with pytest.raises(OSError):
            pipeline.run(tmp_path / "missing")

        assert signal.getsignal(signal.SIGINT) is before


class TestResume:
    def test_completed_records_are_skipped(self, corpus, lossless_variant, path_config):
        _pipeline([lossless_variant], path_config).run(corpus)
        before = _report(path_config)["records"]

        runner = Mock(spec=BenchmarkRunner)
        summary = _pipeline([lossless_variant], path_config, runner=runner).run(corpus)

        runner.benchmark_variant.assert_not_called()
        assert summary.resumed == 3
        assert summary.benchmarked == 0
        after = _report(path_config)["records"]
        assert [r["variants"] for r in after] == [r["variants"] for r in before]

    def test_failed_records_are_retried(self, corpus, lossless_variant, path_config):
        _pipeline(
            [lossless_variant], path_config, converter=PillowConverter(fail_for=("green.png",))
        ).run(corpus)

        summary = _pipeline([lossless_variant], path_config).run(corpus)

        assert summary.resumed == 2
        assert summary.benchmarked == 1
        document = load_report(path_config.REPORT_PATH)
        assert all(r.stage is Stage.AGGREGATED for r in document.records)

    def test_variant_change_starts_fresh(self, corpus, lossless_variant, better_variant, path_config):
        _pipeline([lossless_variant], path_config).run(corpus)

        summary = _pipeline([lossless_variant, better_variant], path_config).run(corpus)

        assert summary.resumed == 0
        assert summary.benchmarked == 3

    def test_resume_disabled(self, corpus, lossless_variant, path_config):
        _pipeline([lossless_variant], path_config).run(corpus)

        summary = _pipeline([lossless_variant], path_config, RESUME=False).run(corpus)

        assert summary.resumed == 0
        assert summary.benchmarked == 3


class TestRunLock:
    def test_concurrent_run_rejected(self, corpus, lossless_variant, path_config):
        with run_lock(path_config.LOCK_PATH):
            with pytest.raises(RunLockedError):
                _pipeline([lossless_variant], path_config).run(corpus)
