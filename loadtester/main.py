"""Command-line entry point.

Usage:
    loadtester -u https://api.example.com -k SECRET -s scenario.json -c 50 -d 120 -r 30
    loadtester --convert-har capture.har -o scenario.json
"""

import argparse
import asyncio
import sys
from pathlib import Path

import structlog
from pydantic import ValidationError

from loadtester.config import LoadTestConfig, settings
from loadtester.engine.coordinator import RampUpCoordinator
from loadtester.engine.report import LoadTestReport, render_report
from loadtester.scenarios.har import HarConversionError, HarConverter
from loadtester.scenarios.loader import ScenarioError, load_scenario
from loadtester.shared.logging import setup_logging

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=settings.app_name,
        description="Replay a request scenario with many concurrent virtual users.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {settings.app_version}")
    parser.add_argument("-u", "--url", help="Base URL of the API to test.")
    parser.add_argument("-k", "--key", help="API key for authentication.")
    parser.add_argument(
        "-c",
        "--concurrent-users",
        type=int,
        default=settings.default_concurrent_users,
        help="Number of concurrent users to simulate (default: %(default)s).",
    )
    parser.add_argument(
        "-d",
        "--duration",
        type=float,
        default=settings.default_duration_seconds,
        help="Hard test duration in seconds (default: %(default)s).",
    )
    parser.add_argument(
        "-r",
        "--ramp-up",
        type=float,
        default=settings.default_ramp_up_seconds,
        help="Ramp-up period in seconds; 0 starts every user at once (default: %(default)s).",
    )
    parser.add_argument("-s", "--scenario", help="Path to the scenario JSON file.")
    parser.add_argument("--convert-har", help="Convert this HAR file to a scenario JSON file.")
    parser.add_argument("-o", "--output", help="Scenario file to create when converting HAR.")
    parser.add_argument(
        "--think-time",
        type=int,
        default=settings.har_default_think_time_ms,
        help="Default think time in ms for converted requests (default: %(default)s).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.request_timeout_seconds,
        help="Per-request timeout in seconds (default: %(default)s).",
    )
    parser.add_argument(
        "--auth-scheme",
        default=settings.auth_scheme,
        help="Authorization scheme placed before the key, e.g. APIKEY or Bearer "
        "(default: %(default)s).",
    )
    parser.add_argument("--report-json", help="Also write the report as JSON to this path.")
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Logging level (default: %(default)s).",
    )
    return parser


def convert_har(args: argparse.Namespace) -> int:
    if not args.output or not args.output.strip():
        print("Error: output scenario file is required when converting a HAR file.", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    try:
        scenario = HarConverter(default_think_time_ms=args.think_time).convert_file(
            args.convert_har, args.output
        )
    except HarConversionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    print(f"Scenario with {len(scenario.requests)} requests written to {args.output}", file=sys.stderr)
    return EXIT_OK


def build_config(args: argparse.Namespace) -> LoadTestConfig:
    return LoadTestConfig(
        base_url=args.url,
        api_key=args.key,
        concurrent_users=args.concurrent_users,
        duration_seconds=args.duration,
        ramp_up_seconds=args.ramp_up,
        request_timeout_seconds=args.timeout,
        auth_scheme=args.auth_scheme,
        max_error_body_chars=settings.max_error_body_chars,
    )


def write_report(report: LoadTestReport, report_json: str | None) -> None:
    print(render_report(report))
    if report_json:
        path = Path(report_json)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        logger.info("report_json_written", path=str(path))


def run_load_test(args: argparse.Namespace) -> int:
    missing = [
        flag
        for flag, value in (("--scenario", args.scenario), ("--url", args.url), ("--key", args.key))
        if not value or not str(value).strip()
    ]
    if missing:
        print(f"Error: {', '.join(missing)} required.", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        scenario = load_scenario(args.scenario)
        config = build_config(args)
    except (ScenarioError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        report = asyncio.run(RampUpCoordinator(config, scenario).run())
    except Exception:
        logger.exception("load_test_failed")
        return EXIT_RUNTIME_ERROR

    write_report(report, args.report_json)
    return EXIT_OK


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, json_logs=settings.log_json)

    try:
        if args.convert_har:
            return convert_har(args)
        return run_load_test(args)
    except KeyboardInterrupt:
        print("stopping load test", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except Exception:
        logger.exception("unexpected_error")
        return EXIT_RUNTIME_ERROR


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
