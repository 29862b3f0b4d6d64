from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx

from .auth import default_app_factory
from .config import AuthenticationConfig
from .orchestrator import DaemonRun, RunReport
from .reporting import ConsoleReporter

logger = logging.getLogger(__name__)


def wait_for_keypress() -> None:
    """Blocks until Enter is pressed; a closed stdin counts as pressed."""
    try:
        input()
    except EOFError:
        pass


def run_console(
    config_path: Union[str, Path],
    reporter: ConsoleReporter,
    wait: Callable[[], None] = wait_for_keypress,
    app_factory: Callable[[str, Any, str], Any] = default_app_factory,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Outermost boundary of the program.

    Any exception escaping the run is reported as a single error line; the prompt is
    shown and the exit status is 0 either way.
    """
    report: Optional[RunReport] = None
    try:
        config = AuthenticationConfig.load(config_path)
        run = DaemonRun(config, reporter, app_factory=app_factory, transport=transport)
        report = asyncio.run(run.run())
    except Exception as exc:  # noqa: BLE001
        logger.debug("Run aborted", exc_info=True)
        reporter.error(str(exc) or exc.__class__.__name__, error_type=exc.__class__.__name__)

    if report is not None:
        logger.debug("Run finished in state %s", report.state)

    reporter.info("Press Enter to exit")
    wait()
    return 0
