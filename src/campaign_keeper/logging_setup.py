"""Logging configuration helper for applications embedding the engine.

Library modules only create module-level loggers; handlers are the host
application's decision.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install a basic stream handler for the ``campaign_keeper`` logger tree."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("campaign_keeper").setLevel(level)
