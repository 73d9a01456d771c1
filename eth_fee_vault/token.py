"""Underlying asset ledgers.

The vault never owns the asset token bookkeeping itself. It reads its balance and
moves tokens through an :py:class:`AssetLedger`:

- :py:class:`InMemoryAssetLedger` for tests and simulations, with minting to fake yield
- :py:class:`ERC20AssetLedger` for a real ERC-20 token over web3
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from functools import cached_property
from typing import Iterator

from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract

from eth_fee_vault.abi import get_erc20_contract
from eth_fee_vault.utils import addr
from eth_fee_vault.vault.errors import ExternalTransferFailure, InsufficientFundsError
from eth_fee_vault.vault.lower_case_dict import LowercaseDict


logger = logging.getLogger(__name__)


class AssetLedger(ABC):
    """Access to the underlying asset token.

    - `holder` is the vault address: its balance is the vault total assets
      and it is the sender of :py:meth:`transfer`
    - Each call either fully succeeds or raises
    """

    #: Vault address holding the assets
    holder: HexAddress

    #: Token decimals for human readable conversions
    decimals: int

    #: Can :py:meth:`atomic` undo transfers already made in the group
    groups_transfers: bool = False

    @abstractmethod
    def balance_of(self, address: HexAddress | str) -> int:
        """Raw token balance of an address."""

    @abstractmethod
    def allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        """How much `spender` may pull from `owner`."""

    def check_transfers(self, pulls: list[tuple[HexAddress, int]], pushes: list[tuple[HexAddress, int]]):
        """Make sure a group of transfers can go through before the first one is made.

        :param pulls:
            (from, amount) pairs pulled into :py:attr:`holder`

        :param pushes:
            (to, amount) pairs sent out of :py:attr:`holder` after the pulls

        :raise InsufficientFundsError:
            A payer lacks balance or allowance, or the holder cannot cover the pushes
        """
        incoming = 0
        for from_, amount in pulls:
            balance = self.balance_of(from_)
            if balance < amount:
                raise InsufficientFundsError(f"Balance of {from_} is {balance}, tried to move {amount}")
            if from_.lower() != self.holder:
                allowed = self.allowance(from_, self.holder)
                if allowed < amount:
                    raise InsufficientFundsError(f"Allowance of {from_} for {self.holder} is {allowed}, tried to move {amount}")
            incoming += amount

        outgoing = sum(amount for _, amount in pushes)
        available = self.balance_of(self.holder) + incoming
        if outgoing > available:
            raise InsufficientFundsError(f"Holder {self.holder} can send {available}, tried to send {outgoing}")

    @abstractmethod
    def transfer_from(self, from_: HexAddress | str, to: HexAddress | str, amount: int):
        """Pull tokens from `from_` using the allowance given to :py:attr:`holder`."""

    @abstractmethod
    def transfer(self, to: HexAddress | str, amount: int):
        """Send tokens out of :py:attr:`holder`."""

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Group several transfers so they succeed or fail together.

        The default does nothing: each transfer is its own atomic unit
        and a later failure cannot undo an earlier transfer.
        """
        yield

    def convert_to_decimals(self, raw_amount: int) -> Decimal:
        """Convert raw token units to decimals."""
        assert type(raw_amount) == int, f"Got {type(raw_amount)}, expected int: {raw_amount}"
        return Decimal(raw_amount) / Decimal(10**self.decimals)

    def convert_to_raw(self, decimal_amount: Decimal | int) -> int:
        """Convert decimalised token amount to raw uint256.

        Example:

        .. code-block:: python

            # 1.0 USDC with 6 decimals
            assert ledger.convert_to_raw(Decimal(1)) == 1_000_000
        """
        return int(decimal_amount * 10**self.decimals)


class InMemoryAssetLedger(AssetLedger):
    """Plain balance map standing in for an ERC-20 token.

    Example:

    .. code-block:: python

        asset = InMemoryAssetLedger(holder=vault_address)
        asset.mint(user, asset.convert_to_raw(Decimal(1000)))
        asset.approve(user, vault_address, 2**256 - 1)

        # Simulate yield by dropping tokens into the vault
        asset.mint(vault_address, asset.convert_to_raw(Decimal(10)))
    """

    groups_transfers = True

    def __init__(self, holder: HexAddress | str, decimals: int = 18, symbol: str = "ASSET"):
        self.holder = addr(holder)
        self.decimals = decimals
        self.symbol = symbol
        self.balances: LowercaseDict = LowercaseDict()
        #: owner -> spender -> amount
        self.allowances: LowercaseDict = LowercaseDict()
        self.total_supply = 0

    def __repr__(self):
        return f"<InMemoryAssetLedger {self.symbol} holder:{self.holder} supply:{self.total_supply}>"

    def balance_of(self, address: HexAddress | str) -> int:
        return self.balances.get(address, 0)

    def allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        return self.allowances.get(owner, LowercaseDict()).get(spender, 0)

    def approve(self, owner: HexAddress | str, spender: HexAddress | str, amount: int):
        assert amount >= 0, f"Negative allowance: {amount}"
        self.allowances.setdefault(owner, LowercaseDict())[spender] = amount

    def mint(self, to: HexAddress | str, amount: int):
        """Create tokens out of thin air."""
        assert amount >= 0, f"Negative mint: {amount}"
        self.balances[to] = self.balance_of(to) + amount
        self.total_supply += amount

    def _move(self, from_: str, to: str, amount: int):
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        balance = self.balance_of(from_)
        if balance < amount:
            raise InsufficientFundsError(f"{self.symbol} balance of {from_} is {balance}, tried to move {amount}")
        self.balances[from_] = balance - amount
        self.balances[to] = self.balance_of(to) + amount

    def transfer_from(self, from_: HexAddress | str, to: HexAddress | str, amount: int):
        if from_.lower() != self.holder:
            allowed = self.allowance(from_, self.holder)
            if allowed < amount:
                raise InsufficientFundsError(f"{self.symbol} allowance of {from_} for {self.holder} is {allowed}, tried to move {amount}")
            self.approve(from_, self.holder, allowed - amount)
        self._move(from_, to, amount)

    def transfer(self, to: HexAddress | str, amount: int):
        self._move(self.holder, to, amount)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        balances = self.balances.copy()
        allowances = LowercaseDict({owner: spenders.copy() for owner, spenders in self.allowances.items()})
        try:
            yield
        except BaseException:
            self.balances = balances
            self.allowances = allowances
            raise


class ERC20AssetLedger(AssetLedger):
    """Underlying asset living in an ERC-20 contract.

    - Transfers are broadcast from :py:attr:`holder`, which must be an account the
      connected node can sign for (e.g. an unlocked Anvil account in tests)
    - Reverted transactions raise :py:class:`ExternalTransferFailure`
    - Each transfer is its own transaction, a group of them cannot be undone as a whole.
      Use :py:meth:`check_transfers` before broadcasting the first one.
    """

    def __init__(self, web3: Web3, contract: Contract, holder: HexAddress | str, gas: int = 200_000):
        self.web3 = web3
        self.contract = contract
        self.holder = addr(holder)
        self.gas = gas

    def __repr__(self):
        return f"<ERC20AssetLedger token:{self.contract.address} holder:{self.holder}>"

    @classmethod
    def from_address(cls, web3: Web3, token_address: HexAddress | str, holder: HexAddress | str, **kwargs) -> "ERC20AssetLedger":
        return cls(web3, get_erc20_contract(web3, token_address), holder, **kwargs)

    @cached_property
    def decimals(self) -> int:
        return self.contract.functions.decimals().call()

    def balance_of(self, address: HexAddress | str) -> int:
        return self.contract.functions.balanceOf(Web3.to_checksum_address(address)).call()

    def allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        return self.contract.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender),
        ).call()

    def _broadcast(self, func, description: str) -> HexBytes:
        try:
            tx_hash = func.transact({"from": Web3.to_checksum_address(self.holder), "gas": self.gas})
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            raise ExternalTransferFailure(f"{description} failed on token {self.contract.address}: {e}") from e

        if receipt["status"] != 1:
            raise ExternalTransferFailure(f"{description} reverted on token {self.contract.address}, tx {tx_hash.hex()}")

        logger.debug("%s confirmed in tx %s", description, tx_hash.hex())
        return tx_hash

    def transfer_from(self, from_: HexAddress | str, to: HexAddress | str, amount: int):
        func = self.contract.functions.transferFrom(
            Web3.to_checksum_address(from_),
            Web3.to_checksum_address(to),
            amount,
        )
        self._broadcast(func, f"transferFrom({from_}, {to}, {amount})")

    def transfer(self, to: HexAddress | str, amount: int):
        func = self.contract.functions.transfer(Web3.to_checksum_address(to), amount)
        self._broadcast(func, f"transfer({to}, {amount})")
