"""Vault state.

One :py:class:`VaultState` exists per vault for its whole lifetime.
It is owned by :py:class:`eth_fee_vault.vault.vault.FeeVault`
and handed by reference to the engines that mutate it.
"""

from dataclasses import dataclass, field, fields, replace

from eth_typing import HexAddress

from eth_fee_vault.vault.fee import FeeRates
from eth_fee_vault.vault.lower_case_dict import LowercaseSet


@dataclass(slots=True)
class VaultState:
    """Everything the vault remembers between calls.

    Total assets are deliberately missing: they are always read live
    from the asset ledger.
    """

    #: Receives deposit/withdrawal fees in assets and management/performance fees in shares
    fee_recipient: HexAddress

    deposit_fee_bps: int

    withdrawal_fee_bps: int

    management_fee_bps: int

    performance_fee_bps: int

    #: UNIX timestamp of the last fee collection, set to the creation time at start
    last_fee_collection: int

    #: Share price (scaled by 1e18) at which the performance fee was last charged.
    #:
    #: Never decreases.
    high_water_mark: int = 0

    #: Sum of all share balances, changes only with share mint/burn
    total_shares: int = 0

    #: Max total assets, 0 = unlimited
    deposit_cap: int = 0

    #: Max asset value of a single receiver's shares, 0 = unlimited
    user_deposit_cap: int = 0

    #: Max assets out in a single withdraw/redeem, 0 = unlimited
    withdrawal_cap: int = 0

    whitelist_enabled: bool = False

    whitelist: LowercaseSet = field(default_factory=LowercaseSet)

    #: Circuit breaker: blocks deposits and mints, never withdrawals
    emergency_mode: bool = False

    #: Move the high-water mark on new highs even when the performance fee is zero
    ratchet_high_water_mark: bool = False

    def get_fee_rates(self) -> FeeRates:
        return FeeRates(
            deposit=self.deposit_fee_bps,
            withdrawal=self.withdrawal_fee_bps,
            management=self.management_fee_bps,
            performance=self.performance_fee_bps,
        )

    def snapshot(self) -> "VaultState":
        """Detached copy used to roll back a failed operation."""
        return replace(self, whitelist=self.whitelist.copy())

    def restore(self, snapshot: "VaultState"):
        """Put back everything from :py:meth:`snapshot` in place.

        The engines hold a reference to this object, so we cannot swap it.
        """
        for f in fields(self):
            setattr(self, f.name, getattr(snapshot, f.name))
