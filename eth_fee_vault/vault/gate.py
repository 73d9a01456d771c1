"""Deposit and withdrawal gates.

Gates answer two questions for every flow:

- May this exact amount go through? Raises :py:class:`~eth_fee_vault.vault.errors.GateRejection` if not
- What is the most that could go through? Never raises, returns 0 when blocked

Which gates a vault has is fixed at creation with a set of :py:class:`VaultGate` tags.
A plain fee vault has none, a strategic vault has all of them.
"""

import enum
import logging
from typing import Iterable

from eth_typing import HexAddress

from eth_fee_vault.vault.errors import DepositCapExceeded, EmergencyModeActive, NotWhitelisted, WithdrawalCapExceeded
from eth_fee_vault.vault.fee import MAX_UINT256
from eth_fee_vault.vault.state import VaultState


logger = logging.getLogger(__name__)


class VaultGate(str, enum.Enum):
    """Access gates a vault can have."""

    #: Total assets may not exceed `deposit_cap`
    deposit_cap = "deposit_cap"

    #: Asset value of a single receiver may not exceed `user_deposit_cap`
    user_deposit_cap = "user_deposit_cap"

    #: A single withdrawal may not exceed `withdrawal_cap`
    withdrawal_cap = "withdrawal_cap"

    #: Only whitelisted receivers may deposit when the whitelist is on
    whitelist = "whitelist"

    #: Emergency mode stops deposits
    emergency = "emergency"


#: Strategic vault
ALL_GATES = frozenset(VaultGate)

#: Plain fee vault
NO_GATES = frozenset()


def parse_gates(value: str) -> frozenset[VaultGate]:
    """Parse a comma separated gate list, e.g. from an environment variable.

    `all` and `none` are accepted as shortcuts.
    """
    value = value.strip().lower()
    if value in ("", "all"):
        return ALL_GATES
    if value == "none":
        return NO_GATES
    return frozenset(VaultGate(v.strip()) for v in value.split(","))


def _remaining(cap: int, used: int) -> int:
    if cap == 0:
        return MAX_UINT256
    return cap - used if cap > used else 0


class CapGateController:
    """Evaluate the access gates against the vault state."""

    def __init__(self, state: VaultState, gates: Iterable[VaultGate] = ALL_GATES):
        self.state = state
        self.gates = frozenset(gates)

    def __repr__(self):
        return f"<CapGateController {sorted(g.value for g in self.gates)}>"

    def is_active(self, gate: VaultGate) -> bool:
        return gate in self.gates

    def is_emergency(self) -> bool:
        return self.is_active(VaultGate.emergency) and self.state.emergency_mode

    def is_whitelisted(self, address: HexAddress | str) -> bool:
        return address in self.state.whitelist

    def is_deposit_blocked(self, receiver: HexAddress | str) -> bool:
        if self.is_emergency():
            return True
        if self.is_active(VaultGate.whitelist) and self.state.whitelist_enabled:
            return not self.is_whitelisted(receiver)
        return False

    def get_max_deposit(self, receiver: HexAddress | str, total_assets: int, receiver_assets: int) -> int:
        """Most gross assets `receiver` may deposit now.

        :param total_assets:
            Current vault assets

        :param receiver_assets:
            Current asset value of the receiver's shares

        :return:
            :py:data:`MAX_UINT256` if nothing limits the deposit
        """
        if self.is_deposit_blocked(receiver):
            return 0

        limit = MAX_UINT256
        if self.is_active(VaultGate.deposit_cap):
            limit = min(limit, _remaining(self.state.deposit_cap, total_assets))
        if self.is_active(VaultGate.user_deposit_cap):
            limit = min(limit, _remaining(self.state.user_deposit_cap, receiver_assets))
        return limit

    def check_deposit(self, receiver: HexAddress | str, assets: int, total_assets: int, receiver_assets: int):
        """Admit a deposit/mint of `assets` gross assets.

        :raise GateRejection:
            If any gate blocks it
        """
        if self.is_emergency():
            logger.debug("Deposit of %d for %s rejected, emergency mode", assets, receiver)
            raise EmergencyModeActive("Emergency mode")

        if self.is_active(VaultGate.whitelist) and self.state.whitelist_enabled and not self.is_whitelisted(receiver):
            logger.debug("Deposit of %d for %s rejected, not whitelisted", assets, receiver)
            raise NotWhitelisted(f"Not whitelisted: {receiver}")

        if self.is_active(VaultGate.deposit_cap) and assets > _remaining(self.state.deposit_cap, total_assets):
            raise DepositCapExceeded(f"Deposit cap exceeded: depositing {assets} on top of {total_assets}, cap {self.state.deposit_cap}")

        if self.is_active(VaultGate.user_deposit_cap) and assets > _remaining(self.state.user_deposit_cap, receiver_assets):
            raise DepositCapExceeded(f"Deposit cap exceeded: {receiver} holds {receiver_assets}, depositing {assets}, user cap {self.state.user_deposit_cap}")

    def get_max_withdrawal(self) -> int:
        """Most assets a single withdraw/redeem may take out."""
        if self.is_active(VaultGate.withdrawal_cap) and self.state.withdrawal_cap != 0:
            return self.state.withdrawal_cap
        return MAX_UINT256

    def check_withdrawal(self, assets: int):
        """Admit a withdrawal of `assets`.

        Used with the requested net assets for withdraw and the gross assets for redeem.

        :raise WithdrawalCapExceeded:
            Above the per-call cap
        """
        cap = self.get_max_withdrawal()
        if assets > cap:
            raise WithdrawalCapExceeded(f"Withdrawal cap exceeded: {assets}, cap {cap}")
