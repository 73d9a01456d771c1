"""Bunch of random utilities."""

import logging
import os
from pathlib import Path
from typing import Optional

import coloredlogs
from eth_typing import HexAddress, HexStr
from eth_utils import is_address


logger = logging.getLogger(__name__)


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
    log_file: str | Path = None,
    std_out_log_level: Optional[int] = None,
    only_log_file=False,
    clear_log_file=True,
) -> logging.Logger:
    """Set up coloured log output.

    - Helper function to have nicer logging output in simulation scripts.
    - Tune down some noisy dependency library logging

    :param default_log_level:
        Used if `LOG_LEVEL` environment variable is not set

    :param log_file:
        Output both console and this log file.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if not std_out_log_level:
        std_out_log_level = numeric_level

    if simplified_logging:
        fmt = "%(message)s"
    else:
        fmt = "%(asctime)s %(name)-36s %(message)s"
    date_fmt = "%H:%M:%S"

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # The file always gets at least INFO, env var controls only the terminal
        min_level = min(logging.INFO, numeric_level)
        mode = "w" if clear_log_file else "a"

        file_handler = logging.FileHandler(log_file, mode=mode, encoding="utf-8")
        file_handler.setLevel(min_level)
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))

        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(min_level)
        root.addHandler(file_handler)

        if not only_log_file:
            coloredlogs.install(level=std_out_log_level, fmt=fmt, datefmt=date_fmt, logger=root)
    else:
        coloredlogs.install(level=std_out_log_level, fmt=fmt, datefmt=date_fmt)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return logging.getLogger()


def addr(address: str | HexAddress | HexStr) -> HexAddress:
    """Convert various address formats to a lowercased HexAddress.

    - Vault bookkeeping keys everything by the lowercased address,
      so checksummed and lowercased inputs hit the same entry

    :raise AssertionError:
        If the input does not look like an Ethereum address
    """
    assert isinstance(address, str), f"Address must be a string, got {type(address)}: {address}"
    assert is_address(address), f"Not an address: {address}"
    return HexAddress(HexStr(address.lower()))
