# tests/test_identity.py
"""Tests for script identity extraction."""

import pytest

from procmon.identity import (
    extract_script_path,
    format_command,
    format_script_name,
    infer_project_root,
    tokenize_command_line,
)


class TestTokenize:
    """Tests for quote-aware command line splitting."""

    def test_splits_on_whitespace(self):
        assert tokenize_command_line("python  app.py\t--port 80") == [
            "python",
            "app.py",
            "--port",
            "80",
        ]

    def test_double_quotes_keep_spaces(self):
        assert tokenize_command_line('"C:\\Program Files\\node.exe" server.js') == [
            "C:\\Program Files\\node.exe",
            "server.js",
        ]

    def test_single_quotes_keep_spaces(self):
        assert tokenize_command_line("python '/srv/my app/main.py'") == [
            "python",
            "/srv/my app/main.py",
        ]

    def test_other_quote_inside_span_is_literal(self):
        assert tokenize_command_line("""echo "it's fine" """) == ["echo", "it's fine"]

    def test_unterminated_quote_runs_to_end(self):
        assert tokenize_command_line('python "/tmp/a b.py') == ["python", "/tmp/a b.py"]

    def test_empty_input(self):
        assert tokenize_command_line("") == []
        assert tokenize_command_line("   ") == []


class TestExtractScriptPath:
    """Tests for choosing the script behind a command line."""

    def test_quoted_interpreter_then_windows_script(self):
        cmd = '"C:\\Python39\\python.exe" K:\\app\\main.py --port 8080'
        assert extract_script_path(cmd) == "K:\\app\\main.py"

    def test_venv_interpreter_with_bare_script(self):
        cmd = "C:\\proj\\.venv\\Scripts\\python.exe main.py"
        assert extract_script_path(cmd) == "C:\\proj\\main.py"

    def test_posix_venv_bin(self):
        cmd = "/home/me/proj/venv/bin/python3 serve.py"
        assert extract_script_path(cmd) == "/home/me/proj/serve.py"

    def test_node_modules_bin(self):
        cmd = "/work/site/node_modules/.bin/tsx index.ts"
        assert extract_script_path(cmd) == "/work/site/index.ts"

    def test_full_path_wins_over_bare_name(self):
        cmd = "/usr/bin/python3 helper.py /opt/tools/run.py"
        assert extract_script_path(cmd) == "/opt/tools/run.py"

    def test_first_full_path_wins(self):
        cmd = "node /srv/a.js /srv/b.js"
        assert extract_script_path(cmd) == "/srv/a.js"

    def test_relative_path_counts_as_full_path(self):
        assert extract_script_path("python scripts/job.py") == "scripts/job.py"

    def test_bare_script_without_interpreter_path(self):
        assert extract_script_path("python main.py") == "main.py"

    def test_bare_script_outside_venv_stays_bare(self):
        assert extract_script_path("/usr/bin/python3 main.py") == "main.py"

    def test_no_script(self):
        assert extract_script_path("/usr/bin/python3 -m http.server") is None

    @pytest.mark.parametrize("cmd", [None, ""])
    def test_empty_command_line(self, cmd):
        assert extract_script_path(cmd) is None

    def test_extension_match_is_case_insensitive(self):
        assert extract_script_path("python C:\\Tools\\RUN.PY") == "C:\\Tools\\RUN.PY"

    def test_unbalanced_quotes_do_not_raise(self):
        assert extract_script_path('python "/tmp/x y.py') == "/tmp/x y.py"


class TestInferProjectRoot:
    """Tests for project root inference from interpreter locations."""

    def test_windows_venv_scripts(self):
        assert infer_project_root("C:\\proj\\.venv\\Scripts\\python.exe", "main.py") == (
            "C:\\proj\\main.py"
        )

    def test_venv_without_dot(self):
        assert infer_project_root("/p/venv/bin/python", "x.py") == "/p/x.py"

    def test_venv_requires_scripts_or_bin(self):
        assert infer_project_root("/p/venv/lib/python", "x.py") is None

    def test_node_modules_requires_dot_bin(self):
        assert infer_project_root("/p/node_modules/tsx/cli.js", "x.ts") is None

    def test_unrecognised_layout(self):
        assert infer_project_root("/usr/bin/python3", "x.py") is None


class TestFormatting:
    """Tests for display truncation."""

    def test_short_script_unchanged(self):
        assert format_script_name("/a/b.py", 40) == "/a/b.py"

    def test_long_script_keeps_tail(self):
        path = "/very/long/path/to/some/deeply/nested/project/main.py"
        result = format_script_name(path, 20)
        assert len(result) == 20
        assert result.startswith("...")
        assert result.endswith("project/main.py")

    def test_missing_script_is_empty(self):
        assert format_script_name(None) == ""

    def test_command_truncated_at_end(self):
        result = format_command("x" * 60, 50)
        assert len(result) == 50
        assert result.endswith("...")

    def test_missing_command_is_dash(self):
        assert format_command(None) == "-"
