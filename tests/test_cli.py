"""CLI tests for the lox entry point.

Test cases live in cli/*.tests files. Format:

    === test name
    args: --stop-at parse {file}
    source code here
    ---
    exit: 0
    stdout-contains: hello
    stderr-empty: true
    ---

Special directives in the input section:
    args:           CLI arguments (first line, required). The placeholder
                    {file} is replaced by a temporary file holding the
                    source; without it the source is fed to the prompt on
                    stdin.
    file-bytes:     hex-encoded raw bytes for {file} instead of text

Assertion directives in the expected section:
    exit:             exact exit code
    stderr:           exact stderr content (trailing newline added)
    stderr-contains:  stderr must contain substring
    stderr-empty:     stderr must be empty
    stdout-contains:  stdout must contain substring
    stdout-empty:     stdout must be empty
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

CLI_DIR = Path(__file__).parent / "cli"
SRC_DIR = Path(__file__).parent.parent / "src"
FILE_PLACEHOLDER = "{file}"


def parse_cli_test_file(path: Path) -> list[tuple[str, dict]]:
    """Parse a .tests file into (name, spec) tuples.

    Each spec dict has keys: args, source, file_bytes, assertions.
    """
    lines = path.read_text().split("\n")
    result: list[tuple[str, dict]] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("=== "):
            test_name = line[4:].strip()
            i += 1
            # Read input section (args line + source)
            input_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                input_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            # Read expected section
            expected_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                expected_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            spec = _parse_spec(input_lines, expected_lines)
            result.append((test_name, spec))
        else:
            i += 1
    return result


def _parse_spec(input_lines: list[str], expected_lines: list[str]) -> dict:
    """Parse input + expected lines into a test spec dict."""
    spec: dict = {
        "args": [],
        "source": "",
        "file_bytes": None,
        "assertions": [],
    }
    # First line must be args:
    body_start = 0
    if input_lines and input_lines[0].startswith("args:"):
        args_str = input_lines[0][5:].strip()
        spec["args"] = args_str.split() if args_str else []
        body_start = 1

    remaining = input_lines[body_start:]
    if remaining and remaining[0].startswith("file-bytes:"):
        hex_str = remaining[0][len("file-bytes:") :].strip()
        spec["file_bytes"] = bytes.fromhex(hex_str)
    else:
        spec["source"] = "\n".join(remaining)

    # Parse assertions
    for line in expected_lines:
        line = line.strip()
        if not line:
            continue
        if line.startswith("exit:"):
            spec["assertions"].append(("exit", int(line[5:].strip())))
        elif line.startswith("stderr:"):
            spec["assertions"].append(("stderr", line[7:].strip()))
        elif line.startswith("stderr-contains:"):
            spec["assertions"].append(("stderr-contains", line[16:].strip()))
        elif line.startswith("stderr-empty:"):
            spec["assertions"].append(("stderr-empty", None))
        elif line.startswith("stdout-contains:"):
            spec["assertions"].append(("stdout-contains", line[16:].strip()))
        elif line.startswith("stdout-empty:"):
            spec["assertions"].append(("stdout-empty", None))
    return spec


def discover_cli_tests() -> list[tuple[str, dict]]:
    """Find all CLI tests across .tests files."""
    results = []
    for test_file in sorted(CLI_DIR.glob("*.tests")):
        tests = parse_cli_test_file(test_file)
        for name, spec in tests:
            test_id = f"{test_file.stem}/{name}"
            results.append((test_id, spec))
    return results


def run_cli(spec: dict, tmp_path: Path) -> subprocess.CompletedProcess[bytes]:
    """Run the lox CLI from a test spec."""
    args = list(spec["args"])
    stdin_data = b""
    if FILE_PLACEHOLDER in args:
        script = tmp_path / "script.lox"
        if spec["file_bytes"] is not None:
            script.write_bytes(spec["file_bytes"])
        else:
            script.write_text(spec["source"])
        args = [str(script) if a == FILE_PLACEHOLDER else a for a in args]
    else:
        stdin_data = spec["source"].encode()
    env = dict(os.environ)
    env["PYTHONPATH"] = str(SRC_DIR)
    env["HOME"] = str(tmp_path)
    env["TERM"] = "dumb"
    env.pop("LOGLEVEL", None)
    return subprocess.run(
        [sys.executable, "-m", "lox.cli", *args],
        input=stdin_data,
        capture_output=True,
        env=env,
        timeout=30,
    )


def check_assertions(
    result: subprocess.CompletedProcess[bytes], assertions: list[tuple]
) -> None:
    """Check all assertions against a CLI result."""
    for kind, value in assertions:
        if kind == "exit":
            assert result.returncode == value, (
                f"expected exit {value}, got {result.returncode}"
                f"\nstderr: {result.stderr.decode(errors='replace')}"
            )
        elif kind == "stderr":
            actual = result.stderr.decode(errors="replace").rstrip("\n")
            assert actual == value, f"expected stderr {value!r}, got {actual!r}"
        elif kind == "stderr-contains":
            actual = result.stderr.decode(errors="replace")
            assert value in actual, (
                f"expected stderr to contain {value!r}, got {actual!r}"
            )
        elif kind == "stderr-empty":
            assert result.stderr == b"", f"expected empty stderr, got {result.stderr!r}"
        elif kind == "stdout-contains":
            actual = result.stdout.decode(errors="replace")
            assert value in actual, (
                f"expected stdout to contain {value!r}, got {actual!r}"
            )
        elif kind == "stdout-empty":
            assert result.stdout == b"", (
                f"expected empty stdout, got {result.stdout[:200]!r}"
            )


def pytest_generate_tests(metafunc):
    """Parametrize test_cli over all .tests files."""
    if "cli_spec" in metafunc.fixturenames:
        tests = discover_cli_tests()
        params = [pytest.param(spec, id=test_id) for test_id, spec in tests]
        metafunc.parametrize("cli_spec", params)


def test_cli(cli_spec: dict, tmp_path: Path) -> None:
    """Run a single CLI test case from .tests file."""
    result = run_cli(cli_spec, tmp_path)
    check_assertions(result, cli_spec["assertions"])


def test_debug_logging_traces_phases(tmp_path: Path) -> None:
    script = tmp_path / "script.lox"
    script.write_text("{\n  var a = 1;\n  print a;\n}\n")
    env = dict(os.environ)
    env["PYTHONPATH"] = str(SRC_DIR)
    env["LOGLEVEL"] = "debug"
    result = subprocess.run(
        [sys.executable, "-m", "lox.cli", str(script)],
        capture_output=True,
        env=env,
        timeout=30,
    )
    assert result.returncode == 0
    assert result.stdout == b"1\n"
    stderr = result.stderr.decode()
    assert "parse: 1 statements" in stderr
    assert "resolve: 1 local references" in stderr
