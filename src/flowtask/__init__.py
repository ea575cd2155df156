"""Optimistic task board client with a local store synced to a persistence API."""
