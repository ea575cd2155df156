# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from flowtask.cli.bootstrap import create_initial_state
from flowtask.core.state import AppState

from .fakes import FakeTaskApi


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="flowtask-test",
        log_level="DEBUG",
        api_base_url="",
        api_token=None,
        http_timeout_seconds=1.0,
        offline_latency_seconds=0.0,
        user_id="u1",
        strict_ordering=False,
        # Paths (tmp per test run)
        data_dir=tmp_path,
        persist_tasks=False,
        tasks_cache_path=tmp_path / "tasks.json",
        console_enabled=False,
    )


@pytest.fixture()
def api() -> FakeTaskApi:
    return FakeTaskApi(user_id="u1")


@pytest.fixture()
def state(settings: SimpleNamespace, api: FakeTaskApi) -> AppState:
    """AppState wired through the real composition root, with the fake API."""
    return create_initial_state(settings=settings, api=api)
