"""Persistence API adapters: HTTP client, in-process reference API, error types."""
