import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tickstack import config
from tickstack.errors import ReadinessTimeout
from tickstack.manifest import load_manifest
from tickstack.readiness import StackMonitor, build_probes, storage_base_url


class StackValidationError(RuntimeError):
    pass


def run_validation(compose_file: str, host: str, database: str, timeout: int, collector_wait: int) -> dict[str, Any]:
    manifest = load_manifest(compose_file)
    report: dict[str, Any] = {
        "compose_file": str(manifest.path),
        "host": host,
        "start_order": manifest.start_order(),
        "checks": [],
    }

    with StackMonitor(build_probes(manifest, host=host), storage_url=storage_base_url(manifest, host=host)) as monitor:
        try:
            results = monitor.wait_until_ready(timeout_seconds=timeout)
        except ReadinessTimeout as exc:
            raise StackValidationError(str(exc)) from exc
        report["checks"].append({"name": "services_ready", "ok": True, "services": [r.to_dict() for r in results]})

        # Telegraf flushes every 10s; allow a few intervals before giving up
        deadline = time.monotonic() + collector_wait
        measurements = monitor.measurements(database)
        while not measurements and time.monotonic() < deadline:
            time.sleep(config.PROBE_INTERVAL_SECONDS)
            measurements = monitor.measurements(database)

    if not measurements:
        raise StackValidationError(f"No measurements in '{database}' after {collector_wait}s")

    report["checks"].append({"name": "collector_reporting", "ok": True, "measurements": sorted(measurements)})
    return report


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate that the running stack is ready and collecting")
    parser.add_argument("--compose-file", default=config.COMPOSE_FILE, help="Path to docker-compose.yml")
    parser.add_argument("--host", default=config.STACK_HOST, help="Address the stack publishes ports on")
    parser.add_argument("--database", default="telegraf", help="Collector database name")
    parser.add_argument("--timeout", type=int, default=config.READY_TIMEOUT_SECONDS, help="Readiness timeout in seconds")
    parser.add_argument("--collector-wait", type=int, default=60, help="Seconds to wait for collector data")
    parser.add_argument("--output", default="", help="Optional JSON report output path")
    args = parser.parse_args()

    report = run_validation(
        compose_file=args.compose_file,
        host=args.host,
        database=args.database,
        timeout=args.timeout,
        collector_wait=args.collector_wait,
    )
    pretty = json.dumps(report, indent=2, default=str)
    print(pretty)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.write(pretty)
            handle.write("\n")


if __name__ == "__main__":
    main()
