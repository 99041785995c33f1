"""Logging and formatting helpers for command line use."""

import logging
import os
from decimal import Decimal

import coloredlogs


def setup_console_logging(default_log_level="info", simplified_logging=True) -> logging.Logger:
    """Set up coloured log output.

    - Level is read from ``LOG_LEVEL`` environment variable

    - Tune down some noisy dependency library logging

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert isinstance(numeric_level, int), f"No such log level: {level}"

    if simplified_logging:
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s %(name)-36s %(message)s"

    coloredlogs.install(level=numeric_level, fmt=fmt, datefmt="%H:%M:%S")

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("web3.manager.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return logging.getLogger()


def format_ether(wei: int) -> str:
    """Human readable ETH amount, no float rounding."""
    value = Decimal(wei) / Decimal(10**18)
    return f"{value.normalize():f} ETH"
