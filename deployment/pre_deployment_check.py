#!/usr/bin/env python3
"""
Pre-Deployment Validation Script

Validates host prerequisites, published-port availability and the stack
configuration before running `tickstack up`.

Usage:
    python deployment/pre_deployment_check.py
    python deployment/pre_deployment_check.py --compose-file path/to/docker-compose.yml
"""

import sys
import socket
import shutil
import argparse
from pathlib import Path
from typing import Dict, List, Tuple

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from shared.console import Colors, print_check, print_section
from tickstack import config
from tickstack.collector_config import load_collector_config
from tickstack.errors import CollectorConfigError, ManifestError
from tickstack.manifest import StackManifest, load_manifest
from tickstack.validation import validate_stack


def check_port(ip: str, port: int, timeout: int = 2) -> Tuple[bool, str]:
    """Check that nothing is already listening on host port"""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        result = sock.connect_ex((ip, port))
        sock.close()

        if result == 0:
            return False, f"Port {port} already in use"
        else:
            return True, f"Port {port} free"
    except socket.timeout:
        return True, f"Port {port} free (timeout)"
    except Exception as e:
        return False, f"Port check failed: {e}"


def check_local_prerequisites() -> bool:
    """Check local machine prerequisites"""
    print_section("Local Machine Prerequisites")

    checks = []

    python_version = sys.version_info
    python_ok = python_version >= (3, 11)
    checks.append(('Python 3.11+', python_ok, f"Version: {python_version.major}.{python_version.minor}.{python_version.micro}"))

    try:
        import yaml  # noqa: F401
        checks.append(('PyYAML installed', True, ""))
    except ImportError:
        checks.append(('PyYAML installed', False, "pip install pyyaml"))

    # Missing docker tooling is not fatal: `tickstack up` installs it
    for binary in ('docker', 'docker-compose'):
        path = shutil.which(binary)
        checks.append((f'{binary} available', True, path or "not found, will be installed by tickstack up"))

    apt_ok = shutil.which('apt-get') is not None
    checks.append(('apt-get available', apt_ok or shutil.which('docker-compose') is not None, "" if apt_ok else "needed to install missing tools"))

    systemctl_ok = shutil.which('systemctl') is not None
    checks.append(('systemctl available', systemctl_ok or shutil.which('docker') is not None, "" if systemctl_ok else "needed to start the Docker daemon"))

    for name, passed, message in checks:
        print_check(name, passed, message)

    return all(check[1] for check in checks)


def check_host_ports(manifest: StackManifest, host: str) -> bool:
    """Check that the published ports are free on this host"""
    print_section("Host Port Availability")

    all_passed = True
    for spec in manifest.services.values():
        for mapping in spec.published_ports():
            port_ok, port_msg = check_port(mapping.host_ip or host, mapping.host_port)
            print_check(f"{spec.name} ({mapping.host_port}/{mapping.protocol})", port_ok, port_msg)
            all_passed = all_passed and port_ok

    return all_passed


def check_configuration(compose_file: str, collector_file: str) -> Tuple[bool, StackManifest]:
    """Validate configuration references"""
    print_section("Configuration Validation")

    try:
        manifest = load_manifest(compose_file)
        collector = load_collector_config(collector_file)
    except (ManifestError, CollectorConfigError) as e:
        print_check("Configuration readable", False, str(e))
        return False, None

    report = validate_stack(manifest, collector)
    for check in report.checks:
        print_check(check.name, check.passed, check.message)

    return report.passed, manifest


def print_summary(results: Dict[str, bool]) -> int:
    """Print final summary"""
    print_section("Pre-Deployment Summary")

    all_passed = all(results.values())

    for category, passed in results.items():
        print_check(category, passed)

    print()
    if all_passed:
        print(f"{Colors.GREEN}{Colors.BOLD}✓ All checks passed! Ready for deployment.{Colors.END}")
        print(f"\n{Colors.BOLD}Next steps:{Colors.END}")
        print(f"  1. Run: tickstack up --wait")
        print(f"  2. Open Grafana and add the InfluxDB data source (http://influxdb:8086, database telegraf)")
        return 0
    else:
        print(f"{Colors.RED}{Colors.BOLD}✗ Some checks failed. Fix issues before deployment.{Colors.END}")
        print(f"\n{Colors.BOLD}Failed checks:{Colors.END}")
        for category, passed in results.items():
            if not passed:
                print(f"  - {category}")
        return 1


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(description='Pre-deployment validation for the TICK stack')
    parser.add_argument('--compose-file', default=config.COMPOSE_FILE, help='Path to docker-compose.yml')
    parser.add_argument('--collector-config', default=config.COLLECTOR_CONFIG_FILE, help='Path to telegraf.conf')
    parser.add_argument('--host', default=config.STACK_HOST, help='Address the stack will publish ports on')
    parser.add_argument('--skip-ports', action='store_true', help='Skip host port checks (stack already running)')
    args = parser.parse_args(argv)

    print(f"{Colors.BOLD}TICK Stack Pre-Deployment Check{Colors.END}")
    print(f"Manifest: {args.compose_file}\n")

    results = {}

    results['Local Prerequisites'] = check_local_prerequisites()
    config_ok, manifest = check_configuration(args.compose_file, args.collector_config)
    results['Configuration'] = config_ok

    if manifest is not None and not args.skip_ports:
        results['Host Ports'] = check_host_ports(manifest, args.host)

    return print_summary(results)


if __name__ == '__main__':
    sys.exit(main())
