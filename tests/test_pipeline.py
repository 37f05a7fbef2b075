"""Tests for pipeline execution: data flow, short-circuiting and error channels."""

import sys
from pathlib import Path

import pytest  # type: ignore

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import command
from command import resolve
from groups import ParseFailure
from ops import ShellSession, execute_line, execute_pipeline, parse_line, parse_pipeline
from result import PARSE_ERROR_MESSAGE, ExecutionResult


def run_line(line: str, session: ShellSession) -> ExecutionResult:
    return execute_line(line, session)


class TestScenarios:
    """End-to-end lines through the session API."""

    def test_echo_into_wc(self, session):
        result = session.execute("echo a a a a | wc")
        assert result.as_dict() == {"interrupted": False, "text": "2 4 8", "terminated": False}

    def test_exit(self, session):
        result = session.execute("exit")
        assert result.as_dict() == {"interrupted": True, "text": "", "terminated": True}

    def test_assignment_then_substitution(self, session):
        first = session.execute("X=10")
        assert not first.interrupted
        assert first.text == ""
        assert session.execute("echo $X").text == "10\n"

    def test_cat_missing_file(self, session):
        result = session.execute("cat missingfile.txt")
        assert result.interrupted and not result.terminated
        assert result.text == "No file named missingfile.txt found"

    def test_unmatched_quote(self, session):
        result = session.execute('echo "a')
        assert result.interrupted and not result.terminated
        assert result.text == "Error: failed to parse command sequence"

    def test_cd_missing_directory(self, session, tmp_path):
        result = session.execute("cd into/missing/dir")
        assert result.interrupted
        assert result.text == "No directory named into/missing/dir found"
        assert session.cwd == tmp_path.resolve()

    def test_single_quotes_never_substitute(self, session):
        session.execute("NAME=5")
        assert session.execute("echo '$NAME'").text == "$NAME\n"

    def test_echo_single(self, session):
        result = session.execute("echo 1")
        assert not result.interrupted
        assert result.text == "1\n"


class TestDataFlow:
    """Carried text threading between stages."""

    def test_cat_passes_piped_text(self, session):
        assert run_line("echo hello | cat | cat", session).text == "hello\n"

    def test_explicit_argument_wins_over_piped_text(self, session, tmp_path):
        (tmp_path / "f.txt").write_text("a a")
        assert run_line("echo ignored words here | wc f.txt", session).text == "1 2 3"

    def test_fixed_output_command_ignores_piped_text(self, session, tmp_path):
        assert run_line("echo x | pwd", session).text == str(tmp_path.resolve())

    def test_first_stage_receives_empty_text(self, session):
        assert run_line("cat", session).text == ""
        assert run_line("wc", session).text == "1 1 0"

    def test_assignment_visible_to_later_stage_of_same_pipeline(self, session):
        assert run_line("X=7 | echo $X", session).text == "7\n"

    def test_composition_matches_stage_by_stage_run(self, session, tmp_path):
        (tmp_path / "words.txt").write_text("one two\nthree\n")
        line = "cat words.txt | cat | wc"
        stages = parse_line(line, session)
        carried = ""
        for stage in stages:
            carried = resolve(stage.name).run(session, stage.args, carried).text
        assert run_line(line, session).text == carried == "3 3 14"

    def test_stages_run_left_to_right(self, session, monkeypatch):
        seen = []

        def record(name):
            def handler(sess, args, piped_input):
                seen.append((name, piped_input))
                return ExecutionResult.success(name)
            return handler

        monkeypatch.setitem(command.BUILTIN_COMMANDS, "first", record("first"))
        monkeypatch.setitem(command.BUILTIN_COMMANDS, "second", record("second"))
        monkeypatch.setitem(command.BUILTIN_COMMANDS, "third", record("third"))
        result = run_line("first | second | third", session)
        assert seen == [("first", ""), ("second", "first"), ("third", "second")]
        assert result.text == "third"


class TestInterruption:
    """The first interrupted stage ends the pipeline."""

    def test_failure_stops_later_side_effects(self, session):
        result = run_line("cat nope.txt | X=1", session)
        assert result.text == "No file named nope.txt found"
        assert session.get_var("X") == ""

    def test_exit_stops_later_stages(self, session):
        result = run_line("exit | Y=2", session)
        assert result.terminated
        assert "Y" not in session.variables

    def test_earlier_side_effects_are_kept(self, session):
        result = run_line("A=1 | cat missing | B=2", session)
        assert result.interrupted
        assert session.get_var("A") == "1"
        assert session.get_var("B") == ""

    def test_later_stages_are_never_resolved(self, session, monkeypatch):
        resolved = []
        real_resolve = command.resolve

        def spy(name):
            resolved.append(name)
            return real_resolve(name)

        monkeypatch.setattr("ops.resolve", spy)
        run_line("cat missing | echo a | wc", session)
        assert resolved == ["cat"]

    def test_failed_result_is_forwarded_unchanged(self, session, monkeypatch):
        failure = ExecutionResult.failure("boom")
        monkeypatch.setitem(command.BUILTIN_COMMANDS, "boom", lambda s, a, p: failure)
        assert run_line("echo a | boom | wc", session) is failure


class TestParseFailures:
    """A malformed line never runs anything."""

    @pytest.mark.parametrize("line", ["X=1 | echo 'a", "cd sub | echo \"x", "X=1 | | echo"])
    def test_nothing_runs_on_parse_failure(self, session, tmp_path, line):
        (tmp_path / "sub").mkdir()
        result = run_line(line, session)
        assert result.text == PARSE_ERROR_MESSAGE
        assert result.interrupted and not result.terminated
        assert session.variables == {}
        assert session.cwd == tmp_path.resolve()

    def test_failure_marker_executes_to_parse_error(self, session, monkeypatch):
        monkeypatch.setattr("ops.resolve", pytest.fail)
        result = execute_pipeline(ParseFailure("unmatched double quote"), session)
        assert result.text == PARSE_ERROR_MESSAGE

    def test_empty_line_is_a_resolution_error(self, session):
        result = run_line("", session)
        assert result.interrupted
        assert result.text != PARSE_ERROR_MESSAGE
        assert "command not found" in result.text


class TestTrace:
    def test_trace_writes_stages_to_stderr(self, session, capsys):
        session.trace = True
        session.set_var("X", "v")
        run_line("echo $X | wc", session)
        err = capsys.readouterr().err
        assert "+ echo v\n" in err
        assert "+ wc\n" in err

    def test_trace_reports_parse_errors(self, session, capsys):
        session.trace = True
        run_line("echo 'a", session)
        assert "pipesh: parse error: unmatched single quote" in capsys.readouterr().err

    def test_no_trace_by_default(self, session, capsys):
        run_line("echo a", session)
        assert capsys.readouterr().err == ""


def test_parse_pipeline_has_no_side_effects(session):
    parse_pipeline("X=1 | cd / | exit")
    assert session.variables == {}
