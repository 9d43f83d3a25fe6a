"""logfire setup for the session research service.

Spans and records are tagged with the service name and package version so
traces from the capture loop and background research runs group together.
Set ``SESSION_RESEARCH_ENV`` to label the deployment environment.
"""

import os
import sys
import threading
from typing import Any

import logfire

SERVICE_NAME = "session-research"

_configured = False
_config_lock = threading.Lock()


def logfire_options(enable_console: bool = False) -> dict[str, Any]:
    """Keyword arguments handed to ``logfire.configure``."""
    from session_research import __version__

    return {
        "service_name": SERVICE_NAME,
        "service_version": __version__,
        "environment": os.getenv("SESSION_RESEARCH_ENV") or "development",
        "console": logfire.ConsoleOptions(min_log_level="debug", verbose=True) if enable_console else False,
        "min_level": "debug",
        "send_to_logfire": "if-token-present",
    }


def configure_logging(enable_console: bool = False) -> None:
    """Configure logfire once per process; later calls are no-ops.

    Args:
        enable_console: Print spans and logs to the terminal as well.
    """
    global _configured

    if _configured:
        return

    with _config_lock:
        if _configured:
            return
        try:
            logfire.configure(**logfire_options(enable_console))
            _configured = True
        except Exception as e:
            # logfire isn't available to report its own failure
            print(f"Failed to configure logfire: {e}", file=sys.stderr)


def is_configured() -> bool:
    return _configured
