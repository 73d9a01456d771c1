"""Vault deployment parameters.

Example reading the parameters from the environment:

.. code-block:: shell

    export FEE_RECIPIENT=0x...
    export DEPOSIT_FEE_BPS=100
    export MANAGEMENT_FEE_BPS=200
    export DEPOSIT_CAP=10000000000000000000000000
    python scripts/simulate-fee-vault.py

"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from eth_typing import HexAddress
from eth_utils import is_address

from eth_fee_vault.abi import ZERO_ADDRESS
from eth_fee_vault.utils import addr
from eth_fee_vault.vault.errors import ValidationError
from eth_fee_vault.vault.fee import FeeRates
from eth_fee_vault.vault.gate import ALL_GATES, VaultGate, parse_gates
from eth_fee_vault.vault.lower_case_dict import LowercaseSet
from eth_fee_vault.vault.state import VaultState


logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(slots=True)
class VaultConfig:
    """Parameters a vault is created with."""

    fee_recipient: HexAddress

    deposit_fee_bps: int = 0

    withdrawal_fee_bps: int = 0

    management_fee_bps: int = 0

    performance_fee_bps: int = 0

    #: 0 = unlimited
    deposit_cap: int = 0

    #: 0 = unlimited
    user_deposit_cap: int = 0

    #: 0 = unlimited
    withdrawal_cap: int = 0

    whitelist_enabled: bool = False

    #: Initially whitelisted addresses
    whitelist: tuple[HexAddress, ...] = ()

    #: Which access gates the vault has
    gates: frozenset[VaultGate] = field(default_factory=lambda: ALL_GATES)

    #: Move the high-water mark on new highs also when the performance fee is zero
    ratchet_high_water_mark: bool = False

    def get_fee_rates(self) -> FeeRates:
        return FeeRates(
            deposit=self.deposit_fee_bps,
            withdrawal=self.withdrawal_fee_bps,
            management=self.management_fee_bps,
            performance=self.performance_fee_bps,
        )

    def validate(self):
        """Check the parameters before a vault is created.

        :raise ValidationError:
            Fee above max or zero fee recipient
        """
        if not self.fee_recipient or self.fee_recipient.lower() == ZERO_ADDRESS:
            raise ValidationError("Zero address: fee recipient missing")
        if not is_address(self.fee_recipient):
            raise ValidationError(f"Fee recipient is not an address: {self.fee_recipient}")
        self.get_fee_rates().validate()
        for name in ("deposit_cap", "user_deposit_cap", "withdrawal_cap"):
            value = getattr(self, name)
            if type(value) != int or value < 0:
                raise ValidationError(f"{name} must be a non-negative int, got {value}")

    def create_state(self, timestamp: int) -> VaultState:
        """Initial vault state at creation time."""
        self.validate()
        return VaultState(
            fee_recipient=addr(self.fee_recipient),
            deposit_fee_bps=self.deposit_fee_bps,
            withdrawal_fee_bps=self.withdrawal_fee_bps,
            management_fee_bps=self.management_fee_bps,
            performance_fee_bps=self.performance_fee_bps,
            last_fee_collection=timestamp,
            deposit_cap=self.deposit_cap,
            user_deposit_cap=self.user_deposit_cap,
            withdrawal_cap=self.withdrawal_cap,
            whitelist_enabled=self.whitelist_enabled,
            whitelist=LowercaseSet(self.whitelist),
            ratchet_high_water_mark=self.ratchet_high_water_mark,
        )

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> "VaultConfig":
        """Read vault parameters from environment variables.

        `FEE_RECIPIENT` is required, everything else defaults to zero/off.
        `WHITELIST` is a comma separated address list, `VAULT_GATES` a comma separated
        :py:class:`VaultGate` list or `all`/`none`.
        """
        if environ is None:
            environ = os.environ

        fee_recipient = environ.get("FEE_RECIPIENT")
        if not fee_recipient:
            raise ValidationError("Zero address: FEE_RECIPIENT environment variable missing")

        whitelist = tuple(a.strip() for a in environ.get("WHITELIST", "").split(",") if a.strip())

        config = cls(
            fee_recipient=fee_recipient,
            deposit_fee_bps=int(environ.get("DEPOSIT_FEE_BPS", "0")),
            withdrawal_fee_bps=int(environ.get("WITHDRAWAL_FEE_BPS", "0")),
            management_fee_bps=int(environ.get("MANAGEMENT_FEE_BPS", "0")),
            performance_fee_bps=int(environ.get("PERFORMANCE_FEE_BPS", "0")),
            deposit_cap=int(environ.get("DEPOSIT_CAP", "0")),
            user_deposit_cap=int(environ.get("USER_DEPOSIT_CAP", "0")),
            withdrawal_cap=int(environ.get("WITHDRAWAL_CAP", "0")),
            whitelist_enabled=_parse_bool(environ.get("WHITELIST_ENABLED", "false")),
            whitelist=whitelist,
            gates=parse_gates(environ.get("VAULT_GATES", "all")),
            ratchet_high_water_mark=_parse_bool(environ.get("RATCHET_HIGH_WATER_MARK", "false")),
        )
        logger.info("Vault config from environment: %s", config)
        return config
