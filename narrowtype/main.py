#!/usr/bin/env python3
"""narrowtype/main.py: CLI entry-point for the narrowing checker.

Usage examples
--------------
    # Check one program model, gcc-style output
    narrowtype shapes.ntm

    # Several models, JSON lines, four worker threads
    narrowtype a.ntm b.ntm --output json --jobs 4

    # Only fields, with a suppressed error id
    narrowtype zoo.ntm --no-locals --suppress FieldCouldHaveMoreSpecificType

    # Show registered checkers
    narrowtype --list-checkers

Exit codes
----------
    0   Success (no diagnostics with severity ERROR).
    1   One or more diagnostics with severity ERROR were emitted.
    2   Infrastructure failure (missing file, model syntax or model error).

The module doubles as ``python -m narrowtype`` via the companion
``narrowtype/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from narrowtype import __version__
from narrowtype.checkers import (
    CheckerRunResults,
    CheckerRunner,
    DiagnosticSeverity,
    SuppressionManager,
    default_registry,
)
from narrowtype.config import AnalysisConfig
from narrowtype.errors import NarrowTypeError
from narrowtype.model_dsl import load_model_file

_log = logging.getLogger("narrowtype")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the root ``narrowtype`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    root = logging.getLogger("narrowtype")
    root.setLevel(level)
    if any(getattr(h, "_narrowtype_cli", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    handler._narrowtype_cli = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def _emit_results(results: CheckerRunResults, fmt: str, stream: TextIO) -> int:
    """Write *results* to *stream* in the chosen format.

    Returns the count of ERROR-severity diagnostics.
    """
    if fmt == "json":
        text = results.to_json_lines()
    elif fmt == "gcc":
        text = results.to_gcc_format()
    else:
        lines = [str(d.location) + ": " + d.message for d in results.diagnostics]
        lines.append(results.summary())
        text = "\n".join(lines)
    if text:
        stream.write(text + "\n")
    return results.error_count


def run_models(
    paths: Sequence[str],
    *,
    options: Optional[Dict[str, Any]] = None,
    suppress: Sequence[str] = (),
    fmt: str = "gcc",
    stream: Optional[TextIO] = None,
) -> int:
    """Load every model in *paths*, run the checkers and print diagnostics.

    Returns an exit code; model and file problems yield ``EXIT_INFRA``.
    """
    stream = stream if stream is not None else sys.stdout
    options = dict(options or {})

    problems = AnalysisConfig.from_options(options).validate()
    if problems:
        for problem in problems:
            _log.error("Invalid option: %s", problem)
        return EXIT_INFRA

    compilations = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.is_file():
            _log.error("model file not found: %s", path)
            return EXIT_INFRA
        try:
            compilations.append(load_model_file(path))
        except NarrowTypeError as exc:
            _log.error("%s", exc.format())
            return EXIT_INFRA
        except OSError as exc:
            _log.error("Failed to read %s: %s", path, exc)
            return EXIT_INFRA

    suppressions = SuppressionManager()
    for error_id in suppress:
        suppressions.add_global_suppression(error_id)

    runner = CheckerRunner(suppressions=suppressions, options=options)
    results = runner.run_all(compilations)
    _log.info("%s", results.summary())

    error_count = _emit_results(results, fmt, stream)
    return EXIT_ERROR if error_count > 0 else EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="narrowtype",
        description=(
            "Suggest more specific declared types for locals and fields "
            "of a program model."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              narrowtype shapes.ntm
              narrowtype a.ntm b.ntm --output json --jobs 4
              narrowtype zoo.ntm --no-locals
        """),
    )
    parser.add_argument(
        "models",
        nargs="*",
        metavar="MODEL",
        help="Program model files (.ntm).",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )
    parser.add_argument(
        "--output",
        choices=["json", "gcc", "summary"],
        default="gcc",
        dest="format",
        help="Output format (default: gcc).",
    )
    parser.add_argument(
        "--suppress",
        action="append",
        default=[],
        metavar="ID",
        help="Suppress an error id globally (repeatable, '*' for all).",
    )
    parser.add_argument(
        "--list-checkers",
        action="store_true",
        help="List registered checkers and exit.",
    )

    g = parser.add_argument_group("analysis tuning")
    g.add_argument(
        "-j", "--jobs",
        type=int,
        default=1,
        metavar="N",
        help="Analyse up to N units concurrently (default: 1).",
    )
    g.add_argument(
        "--no-locals",
        action="store_true",
        help="Do not report local variables.",
    )
    g.add_argument(
        "--no-fields",
        action="store_true",
        help="Do not report fields.",
    )
    g.add_argument(
        "--severity",
        choices=[s.value for s in DiagnosticSeverity],
        default="warning",
        help="Severity of emitted diagnostics (default: warning).",
    )
    return parser


def _list_checkers(stream: TextIO) -> None:
    registry = default_registry()
    for cls in registry.get_all():
        stream.write(f"{cls.name}: {cls.description}\n")
        for descriptor in cls.descriptors:
            stream.write(
                f"  {descriptor.id} [{descriptor.default_severity.value}] "
                f"{descriptor.title}\n"
            )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the narrowtype CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if args.list_checkers:
        _list_checkers(sys.stdout)
        return EXIT_OK

    if not args.models:
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    options: Dict[str, Any] = {
        "max_workers": args.jobs,
        "report_locals": not args.no_locals,
        "report_fields": not args.no_fields,
        "severity": args.severity,
    }

    try:
        return run_models(
            args.models,
            options=options,
            suppress=args.suppress,
            fmt=args.format,
        )
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except NarrowTypeError as exc:
        _log.error("%s", exc.format())
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
