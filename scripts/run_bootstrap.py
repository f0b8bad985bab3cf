"""
TICK Stack Launcher

Installs Docker and Docker Compose when missing, then starts the stack in
detached mode. Equivalent to `tickstack up`.

Services:
---------
- influxdb  (storage, port 8086)
- telegraf  (collector, no published port)
- kapacitor (alerting, port 9092)
- grafana   (dashboard, port 3001)

Usage:
------
python scripts/run_bootstrap.py [--wait]

Environment Variables:
----------------------
TICKSTACK_COMPOSE_FILE: manifest path (default: tickstack/recipe/docker-compose.yml)
TICKSTACK_USE_SUDO: prefix apt-get/systemctl with sudo (default: true unless root)
GRAFANA_ADMIN_PASSWORD: Grafana admin password (default: admin)
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tickstack.cli import main


if __name__ == "__main__":
    sys.exit(main(["up", *sys.argv[1:]]))
