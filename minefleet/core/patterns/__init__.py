"""Reusable building blocks: state machine, event bus, TTL cache."""
