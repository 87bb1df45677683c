"""Escalation - case escalation cause picker backed by a bridge relation."""

__version__ = "0.1.0"
