"""Tests for the fmt module (ANSI-formatted output helpers)."""

from io import StringIO

from rich.console import Console

from mistral_code import fmt


def _capture(func, *args, **kwargs):
    """Call a fmt function with a captured console and return plain-text output."""
    buf = StringIO()
    old = fmt._console
    fmt._console = Console(file=buf, no_color=True, width=400)
    try:
        func(*args, **kwargs)
    finally:
        fmt._console = old
    return buf.getvalue()


class TestIterationHeader:
    def test_contains_iteration_info(self):
        out = _capture(fmt.iteration_header, 3, 10, 4200)
        assert "Iteration 3/10" in out
        assert "4200 tokens" in out

    def test_without_estimate(self):
        out = _capture(fmt.iteration_header, 1, 10, None)
        assert "Iteration 1/10" in out
        assert "tokens" not in out


class TestLlmTiming:
    def test_stop_reason(self):
        out = _capture(fmt.llm_timing, 1.4, "stop")
        assert "LLM responded in 1.4s" in out
        assert "finish_reason=stop" in out

    def test_none_reason(self):
        out = _capture(fmt.llm_timing, 0.2, None)
        assert "finish_reason=None" in out


class TestToolOutput:
    def test_tool_call_shows_arguments(self):
        out = _capture(fmt.tool_call, "read_file", '{\n  "file_path": "a.py"\n}')
        assert "read_file" in out
        assert '"file_path": "a.py"' in out

    def test_tool_result_preview_is_truncated(self):
        out = _capture(fmt.tool_result, "read_file", 0.5, "x" * 500)
        assert "read_file" in out
        assert "0.5s" in out
        assert "x" * fmt.PREVIEW_CHARS + "... (truncated)" in out
        assert "x" * (fmt.PREVIEW_CHARS + 1) not in out

    def test_short_result_not_truncated(self):
        out = _capture(fmt.tool_result, "list_directory", 0.0, "[dir] src")
        assert "[dir] src" in out
        assert "truncated" not in out

    def test_tool_error(self):
        out = _capture(fmt.tool_error, "edit_file", "error: boom")
        assert "edit_file" in out
        assert "error: boom" in out

    def test_tool_refused(self):
        out = _capture(fmt.tool_refused, "run_command")
        assert "run_command" in out
        assert "plan mode" in out


class TestAnswerHeader:
    def test_implementation_mode(self):
        out = _capture(fmt.answer_header, False)
        assert "Mistral Code:" in out
        assert "PLAN MODE" not in out

    def test_plan_mode(self):
        out = _capture(fmt.answer_header, True)
        assert "Mistral Code: [PLAN MODE]" in out


class TestMessages:
    def test_iterations_exhausted(self):
        assert "Maximum iterations reached (10)" in _capture(fmt.iterations_exhausted, 10)

    def test_error(self):
        assert "Error: bad thing" in _capture(fmt.error, "bad thing")

    def test_warning(self):
        assert "Warning: careful" in _capture(fmt.warning, "careful")

    def test_banner(self):
        out = _capture(fmt.repl_banner)
        assert '"exit" to quit' in out

    def test_plan_enabled_includes_hint(self):
        out = _capture(fmt.plan_enabled)
        assert "Plan mode enabled" in out
        assert "/approve" in out


class TestInit:
    def test_no_color(self):
        old = fmt._console
        try:
            fmt.init(no_color=True)
            assert fmt._console.no_color is True
        finally:
            fmt._console = old

    def test_force_color(self):
        old = fmt._console
        try:
            fmt.init(color=True)
            assert fmt._console.is_terminal is True
        finally:
            fmt._console = old
