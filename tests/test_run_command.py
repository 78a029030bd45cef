"""Tests for the run_command tool."""

import sys

import pytest

from mistral_code.tools import NO_OUTPUT, _run_command, dispatch

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires /bin/sh")


@pytest.fixture
def tmp_base(tmp_path):
    """Provide a temporary base directory."""
    return str(tmp_path)


def test_stdout_is_returned(tmp_base):
    assert _run_command("echo hello", tmp_base) == "hello"


def test_shell_syntax_is_supported(tmp_base):
    assert _run_command("echo one && echo two | tr a-z A-Z", tmp_base) == "one\nTWO"


def test_stdout_then_stderr(tmp_base):
    result = _run_command("echo err 1>&2; echo out", tmp_base)
    assert result == "out\nerr"


def test_empty_output_sentinel(tmp_base):
    assert _run_command("true", tmp_base) == NO_OUTPUT


def test_non_zero_exit_is_prefixed(tmp_base):
    result = _run_command("echo boom; exit 3", tmp_base)
    assert result.startswith("error: command failed with exit code 3:")
    assert result.endswith("boom")


def test_non_zero_exit_without_output(tmp_base):
    assert _run_command("exit 1", tmp_base) == "error: command failed with exit code 1"


def test_runs_in_base_dir(tmp_path):
    (tmp_path / "marker.txt").write_text("", encoding="utf-8")
    assert "marker.txt" in _run_command("ls", str(tmp_path))


def test_working_directory_relative_to_base(tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "inner.txt").write_text("", encoding="utf-8")
    assert _run_command("ls", str(tmp_path), working_directory="sub") == "inner.txt"


def test_missing_working_directory(tmp_base):
    result = _run_command("echo hi", tmp_base, working_directory="nowhere")
    assert result.startswith("error:")
    assert "working directory" in result


def test_timeout_kills_command(tmp_base):
    result = _run_command("echo started; sleep 30", tmp_base, timeout=1)
    assert result.startswith("error: command timed out after 1s")
    assert "started" in result


def test_empty_command(tmp_base):
    assert _run_command("   ", tmp_base).startswith("error:")


def test_creates_files(tmp_path):
    _run_command("echo data > out.txt", str(tmp_path))
    assert (tmp_path / "out.txt").read_text(encoding="utf-8") == "data\n"


def test_dispatch_routes_run_command(tmp_base):
    assert dispatch("run_command", {"command": "echo routed"}, tmp_base) == "routed"
