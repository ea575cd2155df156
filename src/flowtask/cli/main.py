# src/flowtask/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, syncs the task list, then either runs
the console REPL or (console disabled) prints a one-shot summary and exits.
"""

from __future__ import annotations

import asyncio
import inspect
import logging

from ..cli.bootstrap import create_initial_state, save_task_cache
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.optimistic import describe
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        save_task_cache(state)
    except Exception:
        logger.exception("Failed to save task cache.")

    try:
        close = getattr(state.api, "aclose", None)
        if close is not None:
            res = close()
            if inspect.isawaitable(res):
                await res
    except Exception:
        logger.debug("API client close failed.", exc_info=True)


async def run(state: AppState) -> None:
    try:
        result = await state.coordinator.load()
        if not result.ok:
            logger.warning("Initial task sync %s; working from the local cache.", describe(result))

        if state.settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Synced %d tasks; nothing else to do.", len(state.tasks))
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/flowtask")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "flowtask"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
