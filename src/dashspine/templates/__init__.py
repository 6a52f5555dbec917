"""Canonical Grafana dashboard templates (JSON package data)."""
