"""
Remote TICK stack deployment.

Stages the recipe on each host in an inventory over SFTP and runs the same
bootstrap as `tickstack up` through SSH, one thread per host.

Inventory (YAML):
    defaults:
      ssh_user: root
      remote_dir: /opt/tickstack
    hosts:
      - name: monitor-1
        ip: 10.0.0.5
      - name: monitor-2
        ip: 10.0.0.6
        ssh_user: ubuntu

Usage:
    python deployment/deploy_hosts.py deployment/hosts.yaml [--key ~/.ssh/id_rsa]

Environment Variables:
----------------------
TICKSTACK_SSH_PASSWORD: SSH password (prompted for when neither it nor --key is given)
"""

import argparse
import getpass
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from shared.logging_config import setup_logging
from tickstack import config
from tickstack.bootstrap import Bootstrapper, stage_recipe
from tickstack.commands import SSHRunner
from tickstack.errors import TickstackError
from tickstack.manifest import StackManifest, load_manifest

logger = logging.getLogger("deploy")

DEFAULT_REMOTE_DIR = "/opt/tickstack"


def load_inventory(path: str) -> List[Dict[str, Any]]:
    """Read the host inventory, merging per-host entries over defaults."""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    defaults = data.get("defaults") or {}
    hosts = []
    for entry in data.get("hosts") or []:
        host = {"ssh_user": "root", "ssh_port": 22, "remote_dir": DEFAULT_REMOTE_DIR, **defaults, **entry}
        if not host.get("ip"):
            raise ValueError(f"Inventory entry without ip: {entry}")
        host.setdefault("name", host["ip"])
        hosts.append(host)

    if not hosts:
        raise ValueError(f"No hosts in inventory {path}")
    return hosts


def deploy_host(
    host: Dict[str, Any],
    manifest: StackManifest,
    password: Optional[str] = None,
    key_filename: Optional[str] = None,
    runner_factory=SSHRunner,
) -> Dict[str, Any]:
    name = host["name"]
    result = {"name": name, "ip": host["ip"], "ok": False, "installed": [], "error": None}
    logger.info(f"[{name}] Connecting to {host['ip']}...")

    try:
        with runner_factory(
            host["ip"],
            username=host["ssh_user"],
            password=password,
            port=int(host["ssh_port"]),
            key_filename=key_filename,
        ) as runner:
            remote_manifest = stage_recipe(runner, manifest, host["remote_dir"])
            report = Bootstrapper(
                runner=runner,
                compose_file=remote_manifest,
                use_sudo=host["ssh_user"] != "root",
            ).run()
        result["ok"] = True
        result["installed"] = report.installed
        logger.info(f"[{name}] ✅ SUCCESS")
    except (TickstackError, OSError) as e:
        result["error"] = str(e)
        logger.error(f"[{name}] ❌ FAILED: {e}")
    except Exception as e:
        # paramiko raises its own exception types (auth, SSH protocol)
        result["error"] = f"{type(e).__name__}: {e}"
        logger.error(f"[{name}] ❌ ERROR: {e}")

    return result


def deploy_all(hosts: List[Dict[str, Any]], manifest: StackManifest, **kwargs) -> List[Dict[str, Any]]:
    results: List[Dict[str, Any]] = []
    lock = threading.Lock()

    def _worker(host):
        outcome = deploy_host(host, manifest, **kwargs)
        with lock:
            results.append(outcome)

    threads = []
    logger.info(f"Starting deployment to {len(hosts)} hosts in parallel...")
    for host in hosts:
        t = threading.Thread(target=_worker, args=(host,))
        t.start()
        threads.append(t)

    for t in threads:
        t.join()

    return sorted(results, key=lambda r: r["name"])


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(description="Deploy the TICK stack to remote hosts")
    parser.add_argument("inventory", help="Path to hosts YAML")
    parser.add_argument("--compose-file", default=config.COMPOSE_FILE, help="Path to docker-compose.yml")
    parser.add_argument("--key", default=None, help="SSH private key file")
    args = parser.parse_args(argv)

    setup_logging("deploy", config.LOG_LEVEL, config.LOG_FILE)

    try:
        hosts = load_inventory(args.inventory)
        manifest = load_manifest(args.compose_file)
    except (OSError, ValueError, yaml.YAMLError, TickstackError) as e:
        logger.error(f"Cannot start deployment: {e}")
        return 2

    password = os.getenv("TICKSTACK_SSH_PASSWORD")
    if password is None and args.key is None:
        try:
            password = getpass.getpass("SSH Password: ")
        except KeyboardInterrupt:
            print("\nAborted.")
            return 1

    results = deploy_all(hosts, manifest, password=password, key_filename=args.key)

    failed = [r for r in results if not r["ok"]]
    print(f"\nAll tasks finished: {len(results) - len(failed)} succeeded, {len(failed)} failed.")
    for r in failed:
        print(f"  - {r['name']} ({r['ip']}): {r['error']}")
    return 0 if not failed else 1


if __name__ == "__main__":
    sys.exit(main())
