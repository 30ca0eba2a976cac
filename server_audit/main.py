from __future__ import annotations

import argparse
from dataclasses import replace
import logging
import os
import sys

from server_audit.assembler import SnapshotAssembler, specs_for
from server_audit.config import OUTPUT_FORMATS, AppConfig, load_config, merge_options
from server_audit.errors import PreconditionFailure
from server_audit.logging_utils import configure_logging, resolve_log_level
from server_audit.render import encode, render_document, render_text
from server_audit.report import Report
from server_audit.runner import ProbeRunner
from server_audit.schema import validate_document
from server_audit.workspace import scratch_workspace

EXIT_OK = 0
EXIT_PRECONDITION = 1
EXIT_OUTPUT = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="One-shot Linux server audit (hardware, storage, network, processes)"
    )
    parser.add_argument(
        "--config",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--fio",
        dest="run_fio",
        action="store_true",
        default=None,
        help="Run the fio disk throughput benchmark (about 30 seconds)",
    )
    parser.add_argument(
        "--iperf-server",
        metavar="HOST",
        help="Run an iperf3 throughput test against HOST",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=OUTPUT_FORMATS,
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--output",
        metavar="PATH",
        help="Write the report to PATH instead of stdout",
    )
    parser.add_argument(
        "--list-probes",
        action="store_true",
        help="Print the probes this invocation would run, then exit",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    return parser


def require_root() -> None:
    if os.geteuid() != 0:
        raise PreconditionFailure("This audit must be run as root (sudo).")


def run_audit(config: AppConfig) -> Report:
    with scratch_workspace(config.workspace) as workspace:
        assembler = SnapshotAssembler(config, ProbeRunner(workspace), workspace)
        return assembler.assemble()


def render(report: Report, output_format: str) -> str:
    logger = logging.getLogger("server_audit")
    if output_format == "text":
        return render_text(report)
    document = render_document(report)
    schema_errors = validate_document(document)
    if schema_errors:
        logger.warning("Schema validation failed with %s errors.", len(schema_errors))
        logger.debug("Schema errors: %s", schema_errors)
    else:
        logger.debug("Schema validation passed.")
    return encode(document) + "\n"


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("server_audit")

    try:
        config = load_config(args.config)
        options = merge_options(
            config.options,
            run_fio=args.run_fio,
            iperf_server=args.iperf_server,
            output_format=args.output_format,
        )
        config = replace(config, options=options)
        if args.list_probes:
            for spec in specs_for(config):
                target = " ".join(spec.command) or spec.source_path
                if spec.fallback_for:
                    target += f"  (only if {spec.fallback_for} is missing)"
                print(f"{spec.name:<12} {spec.category:<17} {target}")
            return EXIT_OK
        require_root()
    except PreconditionFailure as exc:
        logger.error("%s", exc)
        return EXIT_PRECONDITION

    report = run_audit(config)
    output = render(report, options.output_format)
    if args.output:
        try:
            with open(args.output, "w", encoding="utf-8") as handle:
                handle.write(output)
        except OSError as exc:
            logger.error("Cannot write report to %s: %s", args.output, exc)
            return EXIT_OUTPUT
        logger.info("Report written to %s.", args.output)
    else:
        sys.stdout.write(output)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
