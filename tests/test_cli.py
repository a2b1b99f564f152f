## grumpy — CLI integration tests

import os, sys
import subprocess
from pathlib import Path


def run_cli(*cli_args: str | Path, env: dict | None = None, stdin: str | None = None) -> subprocess.CompletedProcess:
    args = [sys.executable, "-m", "grumpy", "--plain"]
    args.extend(str(arg) for arg in cli_args)
    merged_env = os.environ.copy()
    if env:
        merged_env.update(env)
    return subprocess.run(args, input=stdin if stdin is not None else '', capture_output=True, text=True, env=merged_env)


def programs() -> Path:
    return Path(__file__).resolve().parent / "programs"


def _strip_output_lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if line.strip()]


def test_cli_run_subcommand_prints_result():
    result = run_cli("run", programs() / "fact.gpy")
    assert result.returncode == 0
    assert _strip_output_lines(result.stdout) == ["126"]


def test_cli_bare_file_argument_runs_program():
    result = run_cli(programs() / "arrays.gpy")
    assert result.returncode == 0
    assert _strip_output_lines(result.stdout) == ["30"]


def test_cli_options_before_file_argument():
    result = run_cli("--quantum", "3", programs() / "fact.gpy")
    assert result.returncode == 0
    assert _strip_output_lines(result.stdout) == ["126"]


def test_cli_stdin_implicit_runs_program():
    result = run_cli(stdin="% (* 6 7)\n")
    assert result.returncode == 0
    assert _strip_output_lines(result.stdout) == ["42"]


def test_cli_stdin_dash_runs_program():
    result = run_cli("-", stdin="% (seq (print 1) 2)\n")
    assert result.returncode == 0
    assert _strip_output_lines(result.stdout) == ["1", "2"]


def test_cli_parser_error_shows_context():
    result = run_cli(programs() / "error-parser.gpy")
    assert result.returncode != 0
    out = result.stdout
    assert "SYNTAX ERROR." in out
    assert "Parsing `" in out
    assert "File \"" in out
    assert "line 3" in out
    assert "\033[" not in out


def test_cli_compile_error_shows_context():
    result = run_cli(programs() / "error-compile.gpy")
    assert result.returncode != 0
    out = result.stdout
    assert "COMPILE ERROR." in out
    assert "Variable `y` is not defined" in out
    assert "File \"" in out


def test_cli_runtime_error_shows_stack():
    result = run_cli(programs() / "error-runtime.gpy")
    assert result.returncode != 0
    out = result.stdout
    assert "RUNTIME ERROR." in out
    assert "get" in out
    assert "out of bounds" in out
    assert "Stack content is" in out


def test_cli_ignore_reports_failure_in_return_code():
    result = run_cli("-i", programs() / "error-runtime.gpy")
    assert result.returncode == 1
    assert "RUNTIME ERROR." in result.stdout


def test_cli_max_depth_option_and_environment(tmp_path: Path):
    program = tmp_path / "deep.gpy"
    program.write_text("% " + "(neg " * 10 + "1" + ")" * 10 + "\n", encoding="utf-8")
    assert _strip_output_lines(run_cli(program).stdout) == ["1"]

    result = run_cli("--max-depth", "5", program)
    assert result.returncode != 0
    assert "GrumpyNestingError" in result.stdout

    result = run_cli(program, env={"GRUMPY_MAX_DEPTH": "5"})
    assert result.returncode != 0
    assert "SYNTAX ERROR." in result.stdout


def test_cli_tokens_subcommand(tmp_path: Path):
    program = tmp_path / "tok.gpy"
    program.write_text("% (+ 1 2)\n", encoding="utf-8")
    result = run_cli("tokens", program)
    assert result.returncode == 0
    types = [line.split()[1] for line in _strip_output_lines(result.stdout)]
    assert types == ['PERCENT', 'LPAREN', 'PLUS', 'INT', 'INT', 'RPAREN', '$END']


def test_cli_parse_subcommand_prints_canonical_source(tmp_path: Path):
    program = tmp_path / "canon.gpy"
    program.write_text("(fun   f (x i32)->i32\n  x)\n%(f\n 1)", encoding="utf-8")
    result = run_cli("parse", program)
    assert result.returncode == 0
    assert _strip_output_lines(result.stdout) == ["(fun f (x i32) -> i32 x)", "% (f 1)"]


def test_cli_parse_tree(tmp_path: Path):
    program = tmp_path / "tree.gpy"
    program.write_text("% (+ 1 2)", encoding="utf-8")
    result = run_cli("parse", "--tree", program)
    assert result.returncode == 0
    assert _strip_output_lines(result.stdout) == ["entry", "  BinaryOp +", "    1", "    2"]


def test_cli_compile_subcommand(tmp_path: Path):
    program = tmp_path / "code.gpy"
    program.write_text("% 5", encoding="utf-8")
    linked = [line.strip() for line in _strip_output_lines(run_cli("compile", program).stdout)]
    assert linked == ["0  setframe 0", "1  push @4", "2  call", "3  halt", "4  push 5", "5  ret"]
    labelled = [line.strip() for line in _strip_output_lines(run_cli("compile", "--labels", program).stdout)]
    assert "_entry:" in labelled
    assert "1  push _entry" in labelled


def test_cli_trace_and_stats(tmp_path: Path):
    program = tmp_path / "trace.gpy"
    program.write_text("% (+ 1 2)", encoding="utf-8")
    result = run_cli("-v", "--stats", program)
    assert result.returncode == 0
    out = result.stdout
    assert "binary +" in out
    assert "STATISTICS." in out
    assert "step" in out


def test_cli_max_depth_beyond_python_stack(tmp_path: Path):
    program = tmp_path / "deeper.gpy"
    program.write_text("% " + "(neg " * 5000 + "true" + ")" * 5000 + "\n", encoding="utf-8")
    result = run_cli("--max-depth", "100000", program)
    assert result.returncode == 1
    assert "SYNTAX ERROR." in result.stdout
    assert "GrumpyNestingError" in result.stdout
    assert "Traceback" not in result.stdout + result.stderr


def test_cli_repl_multiline_definition():
    result = run_cli("repl", stdin="(fun f (x i32) -> i32\n  (+ x 1))\n(f 2)\n")
    assert result.returncode == 0
    out = result.stdout
    assert ">>> 3" in out
    assert "ERROR." not in out


def test_cli_repl_keeps_definitions_and_reports_errors():
    result = run_cli("repl", stdin="(fun sq (x i32) -> i32 (* x x))\n(sq 4)\n(nope 1)\n(+ (sq 2) 1)\n")
    out = result.stdout
    assert ">>> 16" in out
    assert "COMPILE ERROR." in out
    assert ">>> 5" in out
    assert result.returncode == 1
