"""Tests for backend binary resolution."""

import os
from unittest.mock import patch

from hyperharness.util import which
from hyperharness.util.which import clear_executable_cache, find_executable, resolve_executable


def _make_executable(directory, name):
    path = directory / name
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return str(path)


class TestFindExecutable:
    """Tests for find_executable."""

    def test_found_on_path(self, tmp_path, monkeypatch):
        expected = _make_executable(tmp_path, "fake-agent")
        monkeypatch.setenv("PATH", str(tmp_path))
        assert find_executable("fake-agent") == expected

    def test_found_in_extra_paths(self, tmp_path, monkeypatch):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        expected = _make_executable(bin_dir, "fake-agent")
        monkeypatch.setenv("PATH", str(tmp_path / "empty"))
        assert find_executable("fake-agent", [str(bin_dir)]) == expected

    def test_found_in_default_search_paths(self, tmp_path, monkeypatch):
        expected = _make_executable(tmp_path, "fake-agent")
        monkeypatch.setenv("PATH", str(tmp_path / "empty"))
        with patch.object(which, "default_search_paths", return_value=[str(tmp_path)]):
            assert find_executable("fake-agent") == expected

    def test_non_executable_skipped(self, tmp_path, monkeypatch):
        (tmp_path / "fake-agent").write_text("not executable")
        monkeypatch.setenv("PATH", str(tmp_path / "empty"))
        with patch.object(which, "default_search_paths", return_value=[str(tmp_path)]):
            assert find_executable("fake-agent") is None

    def test_default_search_paths_under_home(self):
        home = os.path.expanduser("~")
        assert os.path.join(home, ".local", "bin") in which.default_search_paths()


class TestResolveExecutable:
    """Tests for the cached lookup."""

    def test_caches_hits_and_misses(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        with patch.object(which, "default_search_paths", return_value=[]):
            assert resolve_executable("fake-agent") is None
            _make_executable(tmp_path, "fake-agent")
            # Miss is cached
            assert resolve_executable("fake-agent") is None
            clear_executable_cache()
            assert resolve_executable("fake-agent") == str(tmp_path / "fake-agent")

    def test_lookup_runs_once(self, tmp_path):
        with patch.object(which, "find_executable", return_value="/x/fake-agent") as finder:
            resolve_executable("fake-agent")
            resolve_executable("fake-agent")
        assert finder.call_count == 1
