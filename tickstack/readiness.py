"""
Readiness probes for the running stack.

depends_on only orders container starts; it does not wait for a service to
accept connections. StackMonitor polls each service's stock health endpoint
so an operator (or `tickstack up --wait`) can block until the stack answers.

Endpoints:
- influxdb:  GET /ping               -> 204
- kapacitor: GET /kapacitor/v1/ping -> 204
- grafana:   GET /api/health        -> 200
"""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from tickstack import config
from tickstack.errors import ReadinessTimeout
from tickstack.manifest import StackManifest
from tickstack.validation import StackRoles

logger = logging.getLogger(__name__)


@dataclass
class ServiceProbe:
    service: str
    url: str
    expected_status: Tuple[int, ...] = (200, 204)


@dataclass
class ProbeResult:
    service: str
    url: str
    ready: bool
    status_code: Optional[int] = None
    detail: str = ""
    checked_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_probes(
    manifest: StackManifest,
    host: str = config.STACK_HOST,
    roles: Optional[StackRoles] = None,
) -> List[ServiceProbe]:
    """Probes for every HTTP service the manifest publishes on the host."""
    roles = roles or StackRoles()
    endpoints = [
        (roles.storage, config.STORAGE_CONTAINER_PORT, "/ping", (204,)),
        (roles.alerting, config.ALERTING_CONTAINER_PORT, "/kapacitor/v1/ping", (204,)),
        (roles.dashboard, config.DASHBOARD_CONTAINER_PORT, "/api/health", (200,)),
    ]

    probes = []
    for service, container_port, path, expected in endpoints:
        if service not in manifest.services:
            logger.warning(f"Service {service} not in manifest, skipping its probe")
            continue
        host_port = manifest.published_port(service, container_port)
        if host_port is None:
            logger.warning(f"{service} does not publish port {container_port}, skipping its probe")
            continue
        probes.append(ServiceProbe(service, f"http://{host}:{host_port}{path}", expected))
    return probes


def storage_base_url(manifest: StackManifest, host: str = config.STACK_HOST, roles: Optional[StackRoles] = None) -> Optional[str]:
    roles = roles or StackRoles()
    if roles.storage not in manifest.services:
        return None
    host_port = manifest.published_port(roles.storage, config.STORAGE_CONTAINER_PORT)
    return f"http://{host}:{host_port}" if host_port else None


class StackMonitor:
    def __init__(
        self,
        probes: List[ServiceProbe],
        storage_url: Optional[str] = None,
        max_retries: int = config.PROBE_RETRIES,
        retry_delay: float = 1.0,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.probes = probes
        self.storage_url = storage_url.rstrip("/") if storage_url else None
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._session = session or requests.Session()

    def close(self):
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _http_get(self, url: str, **kwargs) -> Tuple[Optional[requests.Response], str]:
        detail = ""
        for attempt in range(self.max_retries):
            try:
                return self._session.get(url, timeout=self.timeout, **kwargs), ""
            except requests.RequestException as exc:
                detail = f"{type(exc).__name__}: {exc}"
            if attempt < self.max_retries - 1:
                time.sleep(self.retry_delay)
        return None, detail

    def probe(self, probe: ServiceProbe) -> ProbeResult:
        response, detail = self._http_get(probe.url)
        checked_at = datetime.now(timezone.utc).isoformat()
        if response is None:
            return ProbeResult(probe.service, probe.url, False, None, detail or "unreachable", checked_at)

        ready = response.status_code in probe.expected_status
        detail = "ready" if ready else f"unexpected HTTP {response.status_code}"
        return ProbeResult(probe.service, probe.url, ready, response.status_code, detail, checked_at)

    def check_once(self) -> List[ProbeResult]:
        results = [self.probe(p) for p in self.probes]
        for result in results:
            logger.debug(f"{result.service}: {result.detail}")
        return results

    def wait_until_ready(
        self,
        timeout_seconds: float = config.READY_TIMEOUT_SECONDS,
        poll_interval: float = config.PROBE_INTERVAL_SECONDS,
    ) -> List[ProbeResult]:
        """
        Poll until every probe passes.

        Raises:
            ReadinessTimeout: not all services answered within timeout_seconds,
                or there is nothing to check
        """
        if not self.probes:
            raise ReadinessTimeout("No services to check: the manifest publishes no health endpoints", [])

        deadline = time.monotonic() + timeout_seconds
        while True:
            results = self.check_once()
            pending = [r.service for r in results if not r.ready]
            if not pending:
                logger.info("All services ready")
                return results
            if time.monotonic() >= deadline:
                raise ReadinessTimeout(
                    f"Services not ready after {timeout_seconds}s: {', '.join(pending)}", results
                )
            logger.info(f"Waiting for: {', '.join(pending)}")
            time.sleep(poll_interval)

    def measurements(self, database: str) -> List[str]:
        """Measurement names stored in database; empty if storage is unreachable."""
        if not self.storage_url:
            return []
        response, detail = self._http_get(
            f"{self.storage_url}/query",
            params={"db": database, "q": "SHOW MEASUREMENTS"},
        )
        if response is None:
            logger.warning(f"Storage query failed: {detail}")
            return []
        if response.status_code != 200:
            logger.warning(f"Storage query returned HTTP {response.status_code}")
            return []

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Storage query returned a non-JSON body")
            return []

        names = []
        for statement in payload.get("results", []):
            for series in statement.get("series", []) or []:
                names.extend(str(row[0]) for row in series.get("values", []) if row)
        return names

    def collector_reporting(self, database: str) -> bool:
        return bool(self.measurements(database))
