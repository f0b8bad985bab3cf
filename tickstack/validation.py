"""
Configuration-consistency checks for the stack recipe.

Every reference in the static configuration must resolve:
- depends_on targets exist and form no cycle
- the collector's output URL and the alerting engine's storage URL point at
  the storage service and a port it exposes
- named volumes are declared exactly once
- no two services publish the same host port
- bind-mount sources exist next to the manifest
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from tickstack import config
from tickstack.collector_config import CollectorConfig
from tickstack.errors import ManifestError
from tickstack.manifest import StackManifest

logger = logging.getLogger(__name__)

ALERTING_STORAGE_URL_VAR = "KAPACITOR_INFLUXDB_0_URLS_0"
ALERTING_STORAGE_ENABLED_VAR = "KAPACITOR_INFLUXDB_0_ENABLED"


@dataclass
class StackRoles:
    storage: str = config.STORAGE_SERVICE
    collector: str = config.COLLECTOR_SERVICE
    alerting: str = config.ALERTING_SERVICE
    dashboard: str = config.DASHBOARD_SERVICE

    def as_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class CheckResult:
    name: str
    passed: bool
    message: str = ""


@dataclass
class ValidationReport:
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    def failures(self) -> List[CheckResult]:
        return [check for check in self.checks if not check.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "checks": [asdict(check) for check in self.checks],
        }


def _valid_port(port: Optional[int]) -> bool:
    return port is not None and 1 <= int(port) <= 65535


def resolve_storage_url(manifest: StackManifest, url: str, storage_service: str) -> Tuple[bool, str]:
    """Check that an in-network URL reaches the storage service on an exposed port."""
    parsed = urlparse(str(url or "").strip())
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        return False, f"{url!r} is not a valid http(s) URL"

    target = manifest.find_service(parsed.hostname)
    if target is None:
        return False, f"{url}: host {parsed.hostname!r} is not a service in the manifest"
    if target.name != storage_service:
        return False, f"{url}: host {parsed.hostname!r} is {target.name!r}, not the storage service {storage_service!r}"

    try:
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
    except ValueError:
        return False, f"{url}: invalid port"

    exposed = target.exposed_container_ports()
    if port not in exposed:
        return False, f"{url}: port {port} is not exposed by {target.name!r} (exposes {exposed or 'nothing'})"
    return True, f"{url} -> {target.name}:{port}"


def check_roles_defined(manifest: StackManifest, roles: StackRoles) -> CheckResult:
    missing = [f"{role}={name}" for role, name in roles.as_dict().items() if name not in manifest.services]
    if missing:
        return CheckResult("Stack roles defined", False, f"Missing services: {', '.join(missing)}")
    return CheckResult("Stack roles defined", True, ", ".join(f"{r}={n}" for r, n in roles.as_dict().items()))


def check_unique_services(manifest: StackManifest) -> CheckResult:
    duplicates = [key.split(".", 1)[1] for key in manifest.duplicate_keys if key.startswith("services.")]
    if "services" in manifest.duplicate_keys:
        duplicates.append("<services section>")
    if duplicates:
        return CheckResult("Service names unique", False, f"Declared more than once: {', '.join(duplicates)}")
    return CheckResult("Service names unique", True, f"{len(manifest.services)} services")


def check_dependencies_resolve(manifest: StackManifest) -> CheckResult:
    unresolved = [
        f"{spec.name} -> {dep}"
        for spec in manifest.services.values()
        for dep in spec.depends_on
        if dep not in manifest.services
    ]
    if unresolved:
        return CheckResult("Dependencies resolve", False, f"Undefined dependencies: {', '.join(unresolved)}")
    return CheckResult("Dependencies resolve", True)


def check_start_order(manifest: StackManifest) -> CheckResult:
    try:
        order = manifest.start_order()
    except ManifestError as exc:
        return CheckResult("Start order defined", False, str(exc))
    return CheckResult("Start order defined", True, " -> ".join(order))


def check_collector_output(manifest: StackManifest, collector: CollectorConfig, roles: StackRoles) -> CheckResult:
    name = "Collector output reaches storage"
    if roles.storage not in manifest.services:
        return CheckResult(name, False, f"Storage service {roles.storage!r} is not defined")

    influx_sinks = [sink for sink in collector.outputs if sink.kind == "influxdb"]
    if not influx_sinks or not collector.storage_urls():
        return CheckResult(name, False, "Collector declares no InfluxDB output URL")

    problems = []
    resolved = []
    for sink in influx_sinks:
        if not sink.database:
            problems.append("InfluxDB output does not name a database")
        for url in sink.urls:
            ok, message = resolve_storage_url(manifest, url, roles.storage)
            (resolved if ok else problems).append(message)

    if problems:
        return CheckResult(name, False, "; ".join(problems))
    return CheckResult(name, True, "; ".join(resolved))


def check_alerting_storage_url(manifest: StackManifest, roles: StackRoles) -> CheckResult:
    name = "Alerting engine reaches storage"
    if roles.alerting not in manifest.services:
        return CheckResult(name, False, f"Alerting service {roles.alerting!r} is not defined")

    env = manifest.services[roles.alerting].environment
    url = env.get(ALERTING_STORAGE_URL_VAR)
    if not url:
        return CheckResult(name, False, f"{ALERTING_STORAGE_URL_VAR} is not set")

    enabled = str(env.get(ALERTING_STORAGE_ENABLED_VAR) or "").lower()
    if enabled != "true":
        return CheckResult(name, False, f"{ALERTING_STORAGE_ENABLED_VAR} is {enabled or 'unset'}, expected true")

    ok, message = resolve_storage_url(manifest, url, roles.storage)
    return CheckResult(name, ok, message)


def check_named_volumes(manifest: StackManifest) -> CheckResult:
    name = "Named volumes declared once"
    refs = manifest.named_volume_refs()
    problems = []

    undeclared = sorted(volume for volume in refs if volume not in manifest.volumes)
    if undeclared:
        problems.append(f"not declared: {', '.join(undeclared)}")

    duplicated = [key.split(".", 1)[1] for key in manifest.duplicate_keys if key.startswith("volumes.")]
    if "volumes" in manifest.duplicate_keys:
        duplicated.append("<volumes section>")
    if duplicated:
        problems.append(f"declared more than once: {', '.join(duplicated)}")

    if problems:
        return CheckResult(name, False, "; ".join(problems))

    unused = sorted(volume for volume in manifest.volumes if volume not in refs)
    message = ", ".join(f"{volume} ({'/'.join(users)})" for volume, users in sorted(refs.items()))
    if unused:
        message += f"; unused: {', '.join(unused)}"
    return CheckResult(name, True, message)


def check_host_ports_unique(manifest: StackManifest) -> CheckResult:
    bindings: Dict[Tuple[int, str], List[Tuple[Optional[str], str]]] = {}
    for spec in manifest.services.values():
        for mapping in spec.published_ports():
            bindings.setdefault((mapping.host_port, mapping.protocol), []).append((mapping.host_ip, spec.name))

    conflicts = []
    for (port, protocol), users in sorted(bindings.items()):
        for i, (ip_a, svc_a) in enumerate(users):
            for ip_b, svc_b in users[i + 1:]:
                # An unbound host IP listens on every address
                if ip_a is None or ip_b is None or ip_a == ip_b:
                    conflicts.append(f"{port}/{protocol}: {svc_a} and {svc_b}")

    if conflicts:
        return CheckResult("Host ports unique", False, "; ".join(conflicts))
    published = sorted(port for port, _ in bindings)
    return CheckResult("Host ports unique", True, f"Published: {', '.join(str(p) for p in published) or 'none'}")


def check_port_ranges(manifest: StackManifest) -> CheckResult:
    invalid = []
    for spec in manifest.services.values():
        for mapping in spec.ports:
            if not _valid_port(mapping.container_port):
                invalid.append(f"{spec.name}: container port {mapping.container_port}")
            if mapping.is_published and not _valid_port(mapping.host_port):
                invalid.append(f"{spec.name}: host port {mapping.host_port}")
    if invalid:
        return CheckResult("Ports in range 1..65535", False, "; ".join(invalid))
    return CheckResult("Ports in range 1..65535", True)


def check_bind_mounts(manifest: StackManifest) -> CheckResult:
    missing = []
    for spec in manifest.services.values():
        for mount in spec.volumes:
            if not mount.is_bind:
                continue
            source = Path(mount.source).expanduser()
            if not source.is_absolute():
                source = manifest.base_dir / source
            if not source.exists():
                missing.append(f"{spec.name}: {mount.source}")
    if missing:
        return CheckResult("Bind-mount sources exist", False, f"Missing: {', '.join(missing)}")
    return CheckResult("Bind-mount sources exist", True)


def validate_stack(
    manifest: StackManifest,
    collector: CollectorConfig,
    roles: Optional[StackRoles] = None,
) -> ValidationReport:
    roles = roles or StackRoles()
    report = ValidationReport(
        checks=[
            check_roles_defined(manifest, roles),
            check_unique_services(manifest),
            check_dependencies_resolve(manifest),
            check_start_order(manifest),
            check_collector_output(manifest, collector, roles),
            check_alerting_storage_url(manifest, roles),
            check_named_volumes(manifest),
            check_host_ports_unique(manifest),
            check_port_ranges(manifest),
            check_bind_mounts(manifest),
        ]
    )
    for check in report.failures():
        logger.warning(f"Check failed: {check.name}: {check.message}")
    return report
