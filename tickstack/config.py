import os
from pathlib import Path


def _int_env(name: str, default: int) -> int:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return int(raw)
    except Exception:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"true", "1", "yes"}


RECIPE_DIR = Path(__file__).resolve().parent / "recipe"

COMPOSE_FILE = str(os.getenv("TICKSTACK_COMPOSE_FILE", str(RECIPE_DIR / "docker-compose.yml"))).strip()
COLLECTOR_CONFIG_FILE = str(
    os.getenv("TICKSTACK_COLLECTOR_CONFIG", str(RECIPE_DIR / "telegraf" / "telegraf.conf"))
).strip()

# Address the published ports are reachable on
STACK_HOST = str(os.getenv("TICKSTACK_HOST", "127.0.0.1")).strip()

LOG_LEVEL = str(os.getenv("TICKSTACK_LOG_LEVEL", "INFO")).strip().upper()
LOG_FILE = os.getenv("TICKSTACK_LOG_FILE") or None

READY_TIMEOUT_SECONDS = _int_env("TICKSTACK_READY_TIMEOUT", 120)
PROBE_INTERVAL_SECONDS = _int_env("TICKSTACK_PROBE_INTERVAL", 5)
PROBE_RETRIES = _int_env("TICKSTACK_PROBE_RETRIES", 2)

# Defaults to sudo unless running as root
USE_SUDO = _bool_env("TICKSTACK_USE_SUDO", os.geteuid() != 0 if hasattr(os, "geteuid") else False)

STORAGE_SERVICE = str(os.getenv("TICKSTACK_STORAGE_SERVICE", "influxdb")).strip()
COLLECTOR_SERVICE = str(os.getenv("TICKSTACK_COLLECTOR_SERVICE", "telegraf")).strip()
ALERTING_SERVICE = str(os.getenv("TICKSTACK_ALERTING_SERVICE", "kapacitor")).strip()
DASHBOARD_SERVICE = str(os.getenv("TICKSTACK_DASHBOARD_SERVICE", "grafana")).strip()

STORAGE_CONTAINER_PORT = 8086
ALERTING_CONTAINER_PORT = 9092
DASHBOARD_CONTAINER_PORT = 3000
