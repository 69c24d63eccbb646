"""Lox CLI — run a .lox file or start an interactive prompt."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from types import ModuleType

from .errors import InternalError, LoxError, LoxRuntimeError
from .parse import Parser
from .resolve import resolve
from .runtime import EXIT_OK, EXIT_RUNTIME, EXIT_STATIC, Interpreter
from .tokens import TokenizeError, tokenize

readline: ModuleType | None
try:
    # Line editing and history for the prompt.
    import readline
except ImportError:
    readline = None


USAGE: str = """\
lox [OPTIONS] [FILE]

Run a Lox program, or start an interactive prompt when FILE is omitted.

Options:
  --stop-at PHASE   Stop after phase: tokenize, parse, resolve
  -h, --help        Show this help message

Environment:
  LOGLEVEL          Diagnostic log level (DEBUG, INFO, WARNING, ...)
"""

PHASES: set[str] = {"tokenize", "parse", "resolve"}

EXIT_IO: int = 1
EXIT_USAGE: int = 2

PROMPT: str = "> "
HISTFILE_SIZE: int = 1000

logger = logging.getLogger(__name__)


def _get_log_level() -> int:
    """
    Determine log level from LOGLEVEL environment variable.
    Defaults to WARNING if not set.
    """
    loglevel_env = os.getenv("LOGLEVEL", "").upper()
    if loglevel_env:
        level = getattr(logging, loglevel_env, None)
        if isinstance(level, int):
            return level
    return logging.WARNING


def _print_errors(errors: list[LoxError]) -> None:
    for e in errors:
        print(str(e), file=sys.stderr)


# --- Pipeline ---


def run_pipeline(
    source: str, stop_at: str | None, interp: Interpreter, *, repl: bool = False
) -> int:
    """Run source through every phase up to stop_at. Returns an exit code."""
    try:
        tokens = tokenize(source)
    except TokenizeError as e:
        _print_errors([e])
        return EXIT_STATIC
    logger.debug("tokenize: %d tokens", len(tokens))
    if stop_at == "tokenize":
        return EXIT_OK

    parser = Parser(tokens, repl=repl)
    try:
        statements = parser.parse_program()
    except RecursionError:
        print("lox: nesting too deep", file=sys.stderr)
        return EXIT_STATIC
    if parser.errors:
        _print_errors(list(parser.errors))
        return EXIT_STATIC
    logger.debug("parse: %d statements", len(statements))
    if stop_at == "parse":
        return EXIT_OK

    try:
        resolution = resolve(statements)
    except RecursionError:
        print("lox: nesting too deep", file=sys.stderr)
        return EXIT_STATIC
    if resolution.errors:
        _print_errors(list(resolution.errors))
        return EXIT_STATIC
    logger.debug("resolve: %d local references", len(resolution.locals))
    if stop_at == "resolve":
        return EXIT_OK

    try:
        interp.interpret(statements, resolution.locals)
    except LoxRuntimeError as e:
        _print_errors([e])
        return EXIT_RUNTIME
    except RecursionError:
        print("lox: stack overflow", file=sys.stderr)
        return EXIT_RUNTIME
    except InternalError as e:
        print("lox: internal error: " + str(e), file=sys.stderr)
        return EXIT_RUNTIME
    return EXIT_OK


def read_source(path: str) -> tuple[str, int]:
    """Read a UTF-8 source file. Returns (source, exit_code)."""
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except FileNotFoundError:
        print("lox: " + path + ": No such file or directory", file=sys.stderr)
        return ("", EXIT_IO)
    except OSError as e:
        print("lox: " + path + ": " + str(e), file=sys.stderr)
        return ("", EXIT_IO)
    try:
        return (raw.decode("utf-8"), EXIT_OK)
    except ValueError:
        print("lox: " + path + ": invalid utf-8", file=sys.stderr)
        return ("", EXIT_IO)


# --- Prompt ---


def _history_file() -> Path:
    return Path.home() / ".lox_history"


def run_prompt(stop_at: str | None) -> int:
    """Read-eval-print loop. Errors end the line, not the session."""
    histfile = _history_file()
    if readline and histfile.exists():
        try:
            readline.read_history_file(str(histfile))
        except OSError as e:
            logger.debug("could not read history: %s", e)
    interp = Interpreter()
    while True:
        try:
            line = input(PROMPT)
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if line.strip() == "":
            continue
        code = run_pipeline(line, stop_at, interp, repl=True)
        logger.debug("line finished with exit code %d", code)
    if readline:
        readline.set_history_length(HISTFILE_SIZE)
        try:
            readline.write_history_file(str(histfile))
        except OSError as e:
            logger.debug("could not write history: %s", e)
    return EXIT_OK


# --- Entry point ---


def main(argv: list[str] | None = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    logging.basicConfig(level=_get_log_level(), format="%(message)s", stream=sys.stderr)
    filepath: str = ""
    stop_at: str | None = None
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            return EXIT_OK
        elif arg == "--stop-at":
            if i + 1 >= len(args):
                print("lox: --stop-at requires an argument", file=sys.stderr)
                return EXIT_USAGE
            stop_at = args[i + 1]
            i += 2
        elif arg.startswith("-"):
            print("lox: unknown flag '" + arg + "'", file=sys.stderr)
            return EXIT_USAGE
        elif filepath == "":
            filepath = arg
            i += 1
        else:
            print("lox: unexpected argument '" + arg + "'", file=sys.stderr)
            return EXIT_USAGE
    if stop_at is not None and stop_at not in PHASES:
        print("lox: unknown phase '" + stop_at + "'", file=sys.stderr)
        return EXIT_USAGE

    if filepath == "":
        return run_prompt(stop_at)

    source, err = read_source(filepath)
    if err != EXIT_OK:
        return err
    logger.debug("running %s (%d chars)", filepath, len(source))
    return run_pipeline(source, stop_at, Interpreter())


if __name__ == "__main__":
    sys.exit(main())
