"""
dashboard-spine: turns tables in tenant databases into Grafana dashboards.

Each pass scans a tenant's category databases, classifies table names
against ordered rules, renders canonical templates, publishes them
idempotently, captures GIF snapshots and notifies Slack / Teams.
"""

__version__ = "0.3.0"
