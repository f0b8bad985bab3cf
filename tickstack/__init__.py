"""
tickstack: TICK monitoring stack deployment recipe

Stands up InfluxDB, Telegraf, Kapacitor and Grafana from stock images.
Responsibilities:
- Ship the compose manifest and collector configuration (recipe/)
- Bootstrap a host: install Docker + Docker Compose, start the stack
- Validate that the static configuration references resolve
- Probe the running services for readiness
"""

__version__ = "0.3.0"
