"""Main entrypoint for the API server."""

import logging
import sys

from pydantic import ValidationError

from .api import create_app
from .config import get_settings
from .lifecycle import ProcessLifecycle

logger = logging.getLogger(__name__)


def main() -> int:
    """Run the API server until it is shut down; returns the exit code."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", exc)
        return 1

    app = create_app(settings)
    lifecycle = ProcessLifecycle(app, settings)
    lifecycle.install_crash_hooks()
    return lifecycle.start()


if __name__ == "__main__":
    sys.exit(main())
