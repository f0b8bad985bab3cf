"""
Collector (Telegraf) configuration reader.

telegraf.conf is TOML; durations use Go syntax ("10s", "1m30s", "500ms").
"""

import logging
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from tickstack import config
from tickstack.errors import CollectorConfigError

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> float:
    """Convert a Go duration string to seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip()
    if text in ("", "0"):
        return 0.0

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise CollectorConfigError(f"Invalid duration {value!r}")
    return total


@dataclass
class AgentSettings:
    interval: float = 10.0
    round_interval: bool = True
    metric_batch_size: int = 1000
    metric_buffer_limit: int = 10000
    collection_jitter: float = 0.0
    flush_interval: float = 10.0
    flush_jitter: float = 0.0
    precision: str = ""
    hostname: str = ""
    omit_hostname: bool = False

    @classmethod
    def from_table(cls, table: Dict[str, Any]) -> "AgentSettings":
        defaults = cls()
        return cls(
            interval=parse_duration(table.get("interval", defaults.interval)),
            round_interval=bool(table.get("round_interval", defaults.round_interval)),
            metric_batch_size=int(table.get("metric_batch_size", defaults.metric_batch_size)),
            metric_buffer_limit=int(table.get("metric_buffer_limit", defaults.metric_buffer_limit)),
            collection_jitter=parse_duration(table.get("collection_jitter", defaults.collection_jitter)),
            flush_interval=parse_duration(table.get("flush_interval", defaults.flush_interval)),
            flush_jitter=parse_duration(table.get("flush_jitter", defaults.flush_jitter)),
            precision=str(table.get("precision", defaults.precision)),
            hostname=str(table.get("hostname", defaults.hostname)),
            omit_hostname=bool(table.get("omit_hostname", defaults.omit_hostname)),
        )


@dataclass
class OutputSink:
    kind: str
    urls: List[str] = field(default_factory=list)
    database: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InputSource:
    kind: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CollectorConfig:
    agent: AgentSettings
    outputs: List[OutputSink]
    inputs: List[InputSource]
    path: Optional[Path] = None

    def storage_urls(self) -> List[str]:
        return [url for sink in self.outputs if sink.kind == "influxdb" for url in sink.urls]

    def input_kinds(self) -> List[str]:
        return [source.kind for source in self.inputs]


def _plugin_entries(section: Any, section_name: str) -> List[tuple]:
    # [[outputs.x]] parses to {"x": [{...}, ...]}; [outputs.x] to {"x": {...}}
    if section is None:
        return []
    if not isinstance(section, dict):
        raise CollectorConfigError(f"[{section_name}] must be a table")
    entries = []
    for kind, body in section.items():
        tables = body if isinstance(body, list) else [body]
        for table in tables:
            if not isinstance(table, dict):
                raise CollectorConfigError(f"[{section_name}.{kind}] must be a table")
            entries.append((kind, dict(table)))
    return entries


def parse_collector_config(data: Dict[str, Any], path: Optional[Path] = None) -> CollectorConfig:
    agent_table = data.get("agent") or {}
    if not isinstance(agent_table, dict):
        raise CollectorConfigError("[agent] must be a table")
    try:
        agent = AgentSettings.from_table(agent_table)
    except (TypeError, ValueError) as exc:
        raise CollectorConfigError(f"Invalid [agent] settings: {exc}") from exc

    outputs = []
    for kind, table in _plugin_entries(data.get("outputs"), "outputs"):
        urls = table.pop("urls", [])
        if isinstance(urls, str):
            urls = [urls]
        database = table.pop("database", None)
        outputs.append(OutputSink(kind=kind, urls=[str(u) for u in urls], database=database, options=table))

    inputs = [InputSource(kind=kind, options=table) for kind, table in _plugin_entries(data.get("inputs"), "inputs")]

    return CollectorConfig(agent=agent, outputs=outputs, inputs=inputs, path=path)


def load_collector_config(path: Optional[str] = None) -> CollectorConfig:
    config_path = Path(path or config.COLLECTOR_CONFIG_FILE)
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise CollectorConfigError(f"Collector config not found: {config_path}") from None
    except tomllib.TOMLDecodeError as exc:
        raise CollectorConfigError(f"Invalid TOML in {config_path}: {exc}") from exc

    collector = parse_collector_config(data, path=config_path.resolve())
    logger.debug(
        f"Loaded collector config {config_path}: interval={collector.agent.interval}s, "
        f"inputs={','.join(collector.input_kinds())}"
    )
    return collector
