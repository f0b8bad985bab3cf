"""
Orchestration manifest model

Loads the compose manifest (docker-compose.yml) into typed models so the
static configuration can be inspected without running the orchestrator.

Supported compose features:
- ${VAR}, ${VAR:-default}, ${VAR-default} interpolation and $$ escaping
- short and long forms of ports, volumes, environment and depends_on
- detection of duplicated service / volume keys (PyYAML keeps the last one)
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from tickstack import config
from tickstack.errors import ManifestError

logger = logging.getLogger(__name__)

_VAR_PATTERN = re.compile(
    r"\$(?:\$|\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<sep>:?-)(?P<default>[^}]*))?\})"
)


def interpolate(text: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Apply compose-style variable substitution to manifest text."""
    env = os.environ if environ is None else environ

    def _substitute(match: re.Match) -> str:
        if match.group(0) == "$$":
            return "$"
        name = match.group("name")
        sep = match.group("sep")
        default = match.group("default") or ""
        value = env.get(name)
        if sep == ":-":
            return value if value else default
        if sep == "-":
            return value if value is not None else default
        if value is None:
            logger.warning(f"Variable {name} is not set, substituting an empty string")
            return ""
        return value

    return _VAR_PATTERN.sub(_substitute, text)


class PortMapping(BaseModel):
    """One entry of a service's ports list"""
    container_port: int
    host_port: Optional[int] = None  # None: container-only, no host publication
    host_ip: Optional[str] = None
    protocol: str = "tcp"

    @classmethod
    def parse(cls, entry: Any) -> "PortMapping":
        if isinstance(entry, dict):
            published = entry.get("published")
            return cls(
                container_port=int(entry["target"]),
                host_port=int(published) if published not in (None, "") else None,
                host_ip=entry.get("host_ip"),
                protocol=str(entry.get("protocol", "tcp")),
            )

        spec = str(entry).strip()
        protocol = "tcp"
        if "/" in spec:
            spec, protocol = spec.rsplit("/", 1)

        parts = spec.split(":")
        if len(parts) == 1:
            return cls(container_port=int(parts[0]), protocol=protocol)
        if len(parts) == 2:
            host, container = parts
            return cls(container_port=int(container), host_port=int(host) if host else None, protocol=protocol)
        if len(parts) == 3:
            host_ip, host, container = parts
            return cls(
                container_port=int(container),
                host_port=int(host) if host else None,
                host_ip=host_ip or None,
                protocol=protocol,
            )
        raise ValueError(f"unsupported port specification {entry!r}")

    @property
    def is_published(self) -> bool:
        return self.host_port is not None


class VolumeMount(BaseModel):
    target: str
    source: Optional[str] = None  # None: anonymous volume
    read_only: bool = False

    @classmethod
    def parse(cls, entry: Any) -> "VolumeMount":
        if isinstance(entry, dict):
            return cls(
                source=entry.get("source"),
                target=str(entry["target"]),
                read_only=bool(entry.get("read_only", False)),
            )

        parts = str(entry).strip().split(":")
        if len(parts) == 1:
            return cls(target=parts[0])
        if len(parts) == 2:
            return cls(source=parts[0], target=parts[1])
        if len(parts) == 3:
            modes = set(parts[2].split(","))
            return cls(source=parts[0], target=parts[1], read_only="ro" in modes)
        raise ValueError(f"unsupported volume specification {entry!r}")

    @property
    def is_named(self) -> bool:
        return bool(self.source) and not self.source.startswith((".", "/", "~"))

    @property
    def is_bind(self) -> bool:
        return bool(self.source) and not self.is_named


class ServiceSpec(BaseModel):
    name: str
    image: str
    container_name: Optional[str] = None
    ports: List[PortMapping] = Field(default_factory=list)
    environment: Dict[str, Optional[str]] = Field(default_factory=dict)
    volumes: List[VolumeMount] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list)
    dependency_conditions: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_compose(cls, name: str, body: Any) -> "ServiceSpec":
        if not isinstance(body, dict):
            raise ManifestError(f"Service {name!r} must be a mapping")
        if not body.get("image"):
            raise ManifestError(f"Service {name!r} does not declare an image")

        depends_on: List[str] = []
        conditions: Dict[str, str] = {}
        raw_depends = body.get("depends_on") or []
        if isinstance(raw_depends, dict):
            for dep, options in raw_depends.items():
                depends_on.append(str(dep))
                if isinstance(options, dict) and options.get("condition"):
                    conditions[str(dep)] = str(options["condition"])
        else:
            depends_on = [str(dep) for dep in raw_depends]

        try:
            return cls(
                name=name,
                image=str(body["image"]),
                container_name=body.get("container_name"),
                ports=[PortMapping.parse(p) for p in body.get("ports") or []],
                environment=_parse_environment(body.get("environment")),
                volumes=[VolumeMount.parse(v) for v in body.get("volumes") or []],
                depends_on=depends_on,
                dependency_conditions=conditions,
            )
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise ManifestError(f"Service {name!r}: {exc}") from exc

    def published_ports(self) -> List[PortMapping]:
        return [p for p in self.ports if p.is_published]

    def exposed_container_ports(self) -> List[int]:
        return [p.container_port for p in self.ports]


def _parse_environment(raw: Any) -> Dict[str, Optional[str]]:
    if not raw:
        return {}
    env: Dict[str, Optional[str]] = {}
    if isinstance(raw, dict):
        for key, value in raw.items():
            if value is None:
                env[str(key)] = None
            elif isinstance(value, bool):
                env[str(key)] = "true" if value else "false"
            else:
                env[str(key)] = str(value)
        return env
    for item in raw:
        key, sep, value = str(item).partition("=")
        env[key] = value if sep else None
    return env


class StackManifest(BaseModel):
    services: Dict[str, ServiceSpec]
    volumes: Dict[str, Optional[Dict[str, Any]]] = Field(default_factory=dict)
    duplicate_keys: List[str] = Field(default_factory=list)
    path: Optional[Path] = None

    @property
    def base_dir(self) -> Path:
        return self.path.parent if self.path else Path.cwd()

    def service(self, name: str) -> ServiceSpec:
        try:
            return self.services[name]
        except KeyError:
            raise ManifestError(f"Service {name!r} is not defined in the manifest") from None

    def find_service(self, host: str) -> Optional[ServiceSpec]:
        """Resolve a network hostname to a service by service or container name."""
        if host in self.services:
            return self.services[host]
        for spec in self.services.values():
            if spec.container_name == host:
                return spec
        return None

    def published_port(self, service: str, container_port: int) -> Optional[int]:
        for mapping in self.service(service).ports:
            if mapping.container_port == container_port and mapping.is_published:
                return mapping.host_port
        return None

    def named_volume_refs(self) -> Dict[str, List[str]]:
        refs: Dict[str, List[str]] = {}
        for spec in self.services.values():
            for mount in spec.volumes:
                if mount.is_named:
                    refs.setdefault(mount.source, []).append(spec.name)
        return refs

    def start_order(self) -> List[str]:
        """
        Services ordered so each one follows everything it depends on.
        Ties keep declaration order.

        Raises:
            ManifestError: unresolved dependency or dependency cycle
        """
        for spec in self.services.values():
            for dep in spec.depends_on:
                if dep not in self.services:
                    raise ManifestError(f"Service {spec.name!r} depends on undefined service {dep!r}")

        ordered: List[str] = []
        placed = set()
        pending = list(self.services)
        while pending:
            ready = [name for name in pending if all(dep in placed for dep in self.services[name].depends_on)]
            if not ready:
                raise ManifestError(f"Dependency cycle between services: {', '.join(pending)}")
            for name in ready:
                ordered.append(name)
                placed.add(name)
            pending = [name for name in pending if name not in placed]
        return ordered


def _duplicate_keys(text: str) -> List[str]:
    root = yaml.compose(text, Loader=yaml.SafeLoader)
    if not isinstance(root, yaml.MappingNode):
        return []

    duplicates: List[str] = []
    seen_top = set()
    for key_node, value_node in root.value:
        if key_node.value in seen_top:
            duplicates.append(str(key_node.value))
        seen_top.add(key_node.value)

        if key_node.value in ("services", "volumes") and isinstance(value_node, yaml.MappingNode):
            seen = set()
            for sub_key, _ in value_node.value:
                if sub_key.value in seen:
                    duplicates.append(f"{key_node.value}.{sub_key.value}")
                seen.add(sub_key.value)
    return duplicates


def _interpolate_tree(node: Any, environ: Optional[Mapping[str, str]]) -> Any:
    # Substitution happens on parsed scalars, so values cannot alter the YAML structure
    if isinstance(node, str):
        return interpolate(node, environ)
    if isinstance(node, dict):
        return {key: _interpolate_tree(value, environ) for key, value in node.items()}
    if isinstance(node, list):
        return [_interpolate_tree(item, environ) for item in node]
    return node


def parse_manifest(text: str, path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> StackManifest:
    try:
        data = _interpolate_tree(yaml.safe_load(text), environ)
        duplicates = _duplicate_keys(text)
    except yaml.YAMLError as exc:
        raise ManifestError(f"Invalid YAML in {path or 'manifest'}: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("services"), dict) or not data["services"]:
        raise ManifestError(f"{path or 'manifest'} does not declare any services")

    services = {str(name): ServiceSpec.from_compose(str(name), body) for name, body in data["services"].items()}

    raw_volumes = data.get("volumes") or {}
    if not isinstance(raw_volumes, dict):
        raise ManifestError("Top-level 'volumes' must be a mapping")

    return StackManifest(
        services=services,
        volumes={str(k): v for k, v in raw_volumes.items()},
        duplicate_keys=duplicates,
        path=path,
    )


def load_manifest(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> StackManifest:
    manifest_path = Path(path or config.COMPOSE_FILE)
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ManifestError(f"Manifest not found: {manifest_path}") from None
    except OSError as exc:
        raise ManifestError(f"Cannot read manifest {manifest_path}: {exc}") from exc

    manifest = parse_manifest(text, path=manifest_path.resolve(), environ=environ)
    logger.debug(f"Loaded manifest {manifest_path} with services: {', '.join(manifest.services)}")
    return manifest
