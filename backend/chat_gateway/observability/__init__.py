"""Observability integrations."""
