"""eth_fee_vault package root.

Fee charging tokenised vault accounting engine.

- :py:mod:`eth_fee_vault.vault` contains the vault itself
- :py:mod:`eth_fee_vault.token` contains the asset ledgers the vault moves underlying tokens with
"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"eth-fee-vault needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
