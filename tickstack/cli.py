"""
tickstack command-line entry point.

Usage:
    tickstack                 # same as `tickstack up`
    tickstack up [--wait]     # validate, install tooling, docker-compose up -d
    tickstack validate        # configuration-consistency report
    tickstack status [--wait] # service readiness + collector data flow

Exit status:
    0  success
    1  bootstrap failure, readiness timeout, failed checks (validate/status)
    2  configuration error (unreadable manifest/collector config, failed checks before up)
    N  exit status of the first failing command
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from shared.console import Colors, print_check, print_section
from shared.logging_config import setup_logging
from tickstack import config
from tickstack.bootstrap import Bootstrapper
from tickstack.collector_config import CollectorConfig, load_collector_config
from tickstack.commands import LocalRunner
from tickstack.errors import (
    BootstrapError,
    CollectorConfigError,
    CommandError,
    ManifestError,
    ReadinessTimeout,
)
from tickstack.manifest import StackManifest, load_manifest
from tickstack.readiness import ProbeResult, StackMonitor, build_probes, storage_base_url
from tickstack.validation import ValidationReport, validate_stack

logger = logging.getLogger("tickstack")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tickstack", description="Stand up and inspect the TICK monitoring stack")
    parser.add_argument("--compose-file", default=config.COMPOSE_FILE, help="Path to docker-compose.yml")
    parser.add_argument("--collector-config", default=config.COLLECTOR_CONFIG_FILE, help="Path to telegraf.conf")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="DEBUG, INFO, WARNING, ERROR")
    parser.set_defaults(wait=False, timeout=config.READY_TIMEOUT_SECONDS, json=False)

    sub = parser.add_subparsers(dest="command")

    up = sub.add_parser("up", help="Install Docker/Compose if missing and start the stack")
    up.add_argument("--wait", action="store_true", help="Block until every service answers its health endpoint")
    up.add_argument("--timeout", type=int, default=config.READY_TIMEOUT_SECONDS, help="Readiness timeout in seconds")

    validate = sub.add_parser("validate", help="Check that configuration references resolve")
    validate.add_argument("--json", action="store_true", help="Print the report as JSON")

    status = sub.add_parser("status", help="Probe running services")
    status.add_argument("--wait", action="store_true", help="Poll until every service is ready")
    status.add_argument("--timeout", type=int, default=config.READY_TIMEOUT_SECONDS, help="Readiness timeout in seconds")
    status.add_argument("--json", action="store_true", help="Print the report as JSON")

    return parser


def _load(args) -> tuple:
    manifest = load_manifest(args.compose_file)
    collector = load_collector_config(args.collector_config)
    return manifest, collector


def _collector_database(collector: CollectorConfig) -> str:
    for sink in collector.outputs:
        if sink.kind == "influxdb" and sink.database:
            return sink.database
    return "telegraf"


def _print_validation(report: ValidationReport):
    print_section("Configuration Validation")
    for check in report.checks:
        print_check(check.name, check.passed, check.message)


def _print_probes(results: List[ProbeResult], collector_ok: Optional[bool] = None, database: str = ""):
    print_section("Stack Status")
    for result in results:
        print_check(f"{result.service} ({result.url})", result.ready, result.detail)
    if collector_ok is not None:
        message = f"measurements present in '{database}'" if collector_ok else f"no measurements in '{database}' yet"
        print_check("Collector reporting", collector_ok, message)


def _monitor_for(manifest: StackManifest) -> StackMonitor:
    return StackMonitor(build_probes(manifest), storage_url=storage_base_url(manifest))


def cmd_validate(args) -> int:
    manifest, collector = _load(args)
    report = validate_stack(manifest, collector)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        _print_validation(report)
    return 0 if report.passed else 1


def cmd_up(args, runner=None) -> int:
    manifest, collector = _load(args)
    report = validate_stack(manifest, collector)
    if not report.passed:
        _print_validation(report)
        logger.error("Configuration checks failed, not starting the stack")
        return 2

    bootstrapper = Bootstrapper(runner=runner or LocalRunner(), compose_file=str(manifest.path))
    bootstrapper.run()

    if args.wait:
        with _monitor_for(manifest) as monitor:
            results = monitor.wait_until_ready(timeout_seconds=args.timeout)
        _print_probes(results)
    return 0


def cmd_status(args) -> int:
    manifest, collector = _load(args)
    database = _collector_database(collector)

    with _monitor_for(manifest) as monitor:
        if args.wait:
            results = monitor.wait_until_ready(timeout_seconds=args.timeout)
        else:
            results = monitor.check_once()
        collector_ok = monitor.collector_reporting(database)

    if not results:
        logger.warning("No services to check: the manifest publishes no health endpoints")
    ready = bool(results) and all(r.ready for r in results)
    if args.json:
        print(json.dumps({
            "ready": ready,
            "collector_reporting": collector_ok,
            "database": database,
            "services": [r.to_dict() for r in results],
        }, indent=2))
    else:
        _print_probes(results, collector_ok, database)
    return 0 if ready else 1


COMMANDS = {
    "up": cmd_up,
    "validate": cmd_validate,
    "status": cmd_status,
}


def main(argv: Optional[List[str]] = None, runner=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("tickstack", args.log_level, config.LOG_FILE)

    command = args.command or "up"
    try:
        if command == "up":
            return cmd_up(args, runner=runner)
        return COMMANDS[command](args)
    except CommandError as exc:
        logger.error(str(exc))
        code = exc.returncode
        if code < 0:
            code = 128 - code
        return code or 1
    except (ManifestError, CollectorConfigError) as exc:
        logger.error(f"Configuration error: {exc}")
        return 2
    except BootstrapError as exc:
        logger.error(f"Bootstrap failed: {exc}")
        return 1
    except ReadinessTimeout as exc:
        _print_probes(exc.results)
        logger.error(str(exc))
        print(f"\n{Colors.RED}{Colors.BOLD}✗ Stack not ready. Inspect `docker-compose logs`.{Colors.END}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
