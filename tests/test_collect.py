"""Tests for file discovery and deduplication."""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from leabench.collect import collect_files, deduplicate
from leabench.meta import file_identity


@pytest.mark.fast
class TestCollectFiles:
    def test_finds_images_recursively(self, corpus):
        names = sorted(p.name for p in collect_files(corpus))

        assert names == ["blue.ppm", "copy_of_red.png", "green.png", "red.png"]

    def test_excludes_zero_byte_files(self, corpus):
        assert all(p.stat().st_size > 0 for p in collect_files(corpus))

    def test_suffix_match_is_case_insensitive(self, tmp_path):
        (tmp_path / "SHOUT.PNG").write_bytes(b"x")

        assert [p.name for p in collect_files(tmp_path, [".png"])] == ["SHOUT.PNG"]

    def test_respects_extension_filter(self, corpus):
        assert [p.name for p in collect_files(corpus, [".ppm"])] == ["blue.ppm"]

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(OSError):
            collect_files(tmp_path / "nope")

    def test_file_root_raises(self, tmp_path):
        path = tmp_path / "file.png"
        path.write_bytes(b"x")
        with pytest.raises(OSError):
            collect_files(path)

    def test_empty_tree(self, tmp_path):
        assert collect_files(tmp_path) == []

    def test_unstattable_file_skipped(self, tmp_path, caplog):
        good = tmp_path / "good.png"
        bad = tmp_path / "bad.png"
        good.write_bytes(b"ok")
        bad.write_bytes(b"gone")
        real_stat = Path.stat

        def fake_stat(self, *args, **kwargs):
            if self == bad:
                raise PermissionError("denied")
            return real_stat(self, *args, **kwargs)

        with patch.object(Path, "stat", fake_stat), caplog.at_level(logging.WARNING):
            found = collect_files(tmp_path)

        assert found == [good]
        assert "Skipping bad.png (context:" in caplog.text
        assert "error=denied" in caplog.text


@pytest.mark.fast
class TestDeduplicate:
    def test_identical_content_collapses(self, corpus):
        result = deduplicate(collect_files(corpus))

        assert len(result.records) == 3
        # os.walk visits the root before nested directories
        assert [p.name for p in result.duplicates] == ["copy_of_red.png"]
        assert "red.png" in {r.filename for r in result.records.values()}

    def test_keys_match_content(self, corpus):
        result = deduplicate(collect_files(corpus))

        for key, record in result.records.items():
            assert key == record.key
            assert file_identity(record.source_path) == key

    def test_first_seen_wins(self, tmp_path):
        first = tmp_path / "b.png"
        second = tmp_path / "a.png"
        first.write_bytes(b"same")
        second.write_bytes(b"same")

        result = deduplicate([first, second])

        (record,) = result.records.values()
        assert record.filename == "b.png"
        assert result.duplicates == [second]

    def test_same_size_different_content_kept(self, tmp_path):
        a = tmp_path / "a.png"
        b = tmp_path / "b.png"
        a.write_bytes(b"aaaa")
        b.write_bytes(b"bbbb")

        assert len(deduplicate([a, b]).records) == 2

    def test_threaded_hashing_preserves_order(self, tmp_path):
        paths = []
        for i in range(12):
            path = tmp_path / f"{i:02d}.png"
            path.write_bytes(b"dup" if i % 3 == 0 else f"unique {i}".encode())
            paths.append(path)

        sequential = deduplicate(paths, workers=1)
        threaded = deduplicate(paths, workers=4)

        assert list(sequential.records) == list(threaded.records)
        assert [r.filename for r in threaded.records.values()][0] == "00.png"
        assert threaded.duplicates == sequential.duplicates

    def test_unreadable_file_skipped(self, tmp_path, caplog):
        good = tmp_path / "good.png"
        bad = tmp_path / "bad.png"
        good.write_bytes(b"ok")
        bad.write_bytes(b"locked")

        real_identity = file_identity

        def fake_identity(path):
            if path == bad:
                raise PermissionError("denied")
            return real_identity(path)

        with patch("leabench.collect.file_identity", side_effect=fake_identity), caplog.at_level(logging.WARNING):
            result = deduplicate([good, bad])

        assert [r.filename for r in result.records.values()] == ["good.png"]
        assert result.unreadable == [bad]
        assert "Skipping bad.png: cannot hash file (context:" in caplog.text
