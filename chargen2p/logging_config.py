"""Logging configuration for chargen2p programs."""

import logging
import os
import sys


def configure_logging(standalone: bool = True) -> None:
    """Configure application-wide logging.

    Respects CHARGEN2P_LOG_LEVEL environment variable (default: INFO).

    Args:
        standalone: Log to stderr with timestamp, level and module name. When
                    False, log bare messages to stdout, for supervisors (like
                    systemd) that add their own timestamps.

    Environment Variables:
        CHARGEN2P_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                             Default is INFO.

    Examples:
        # Default INFO level
        $ chargen2pd

        # Debug level for troubleshooting
        $ CHARGEN2P_LOG_LEVEL=DEBUG chargen2p-probe --addr localhost:19
    """
    # Get log level from environment, default to INFO
    log_level_str = os.environ.get("CHARGEN2P_LOG_LEVEL", "INFO").upper()

    log_level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    log_level = log_level_map.get(log_level_str, logging.INFO)

    if standalone:
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            stream=sys.stderr,
            force=True,  # Override any existing configuration
        )
    else:
        logging.basicConfig(
            level=log_level,
            format="%(message)s",
            stream=sys.stdout,
            force=True,
        )

    logger = logging.getLogger(__name__)
    logger.debug("Logging configured: level=%s", logging.getLevelName(log_level))
