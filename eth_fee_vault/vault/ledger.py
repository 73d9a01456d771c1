"""Vault share token bookkeeping.

- Plain ERC-20 style balance and allowance maps
- Share supply lives in :py:attr:`VaultState.total_shares`, and every mint/burn here
  updates it so that the sum of balances always equals the supply
"""

import logging

from eth_typing import HexAddress

from eth_fee_vault.vault.errors import InsufficientFundsError
from eth_fee_vault.vault.fee import MAX_UINT256
from eth_fee_vault.vault.lower_case_dict import LowercaseDict
from eth_fee_vault.vault.state import VaultState


logger = logging.getLogger(__name__)


class ShareLedger:
    """Share balances of one vault."""

    def __init__(self, state: VaultState):
        self.state = state
        self.balances: LowercaseDict = LowercaseDict()
        #: owner -> spender -> amount
        self.allowances: LowercaseDict = LowercaseDict()

    def __repr__(self):
        return f"<ShareLedger holders:{len(self.balances)} supply:{self.state.total_shares}>"

    def balance_of(self, holder: HexAddress | str) -> int:
        return self.balances.get(holder, 0)

    def allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        return self.allowances.get(owner, LowercaseDict()).get(spender, 0)

    def get_balance_sum(self) -> int:
        return sum(self.balances.values())

    def approve(self, owner: HexAddress | str, spender: HexAddress | str, amount: int):
        assert type(amount) == int and amount >= 0, f"Bad allowance: {amount}"
        self.allowances.setdefault(owner, LowercaseDict())[spender] = amount

    def spend_allowance(self, owner: HexAddress | str, spender: HexAddress | str, amount: int):
        """Decrease allowance, infinite approval stays infinite.

        :raise InsufficientFundsError:
            Allowance is less than `amount`
        """
        allowed = self.allowance(owner, spender)
        if allowed == MAX_UINT256:
            return
        if allowed < amount:
            raise InsufficientFundsError(f"Insufficient allowance: {spender} may spend {allowed} shares of {owner}, needs {amount}")
        self.approve(owner, spender, allowed - amount)

    def transfer(self, from_: HexAddress | str, to: HexAddress | str, amount: int):
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        balance = self.balance_of(from_)
        if balance < amount:
            raise InsufficientFundsError(f"Insufficient shares: {from_} has {balance}, tried to transfer {amount}")
        self.balances[from_] = balance - amount
        self.balances[to] = self.balance_of(to) + amount

    def transfer_from(self, spender: HexAddress | str, from_: HexAddress | str, to: HexAddress | str, amount: int):
        self.spend_allowance(from_, spender, amount)
        self.transfer(from_, to, amount)

    def mint(self, to: HexAddress | str, amount: int):
        assert type(amount) == int and amount >= 0, f"Bad mint amount: {amount}"
        self.balances[to] = self.balance_of(to) + amount
        self.state.total_shares += amount

    def burn(self, from_: HexAddress | str, amount: int):
        """Destroy shares.

        :raise InsufficientFundsError:
            Holder does not have enough shares
        """
        assert type(amount) == int and amount >= 0, f"Bad burn amount: {amount}"
        balance = self.balance_of(from_)
        if balance < amount:
            raise InsufficientFundsError(f"Insufficient shares: {from_} has {balance}, tried to burn {amount}")
        self.balances[from_] = balance - amount
        self.state.total_shares -= amount

    def snapshot(self) -> tuple[LowercaseDict, LowercaseDict]:
        allowances = LowercaseDict({owner: spenders.copy() for owner, spenders in self.allowances.items()})
        return self.balances.copy(), allowances

    def restore(self, snapshot: tuple[LowercaseDict, LowercaseDict]):
        self.balances, self.allowances = snapshot
