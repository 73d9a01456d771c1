"""Fee charging tokenised vault.

:py:class:`FeeVault` runs the four user flows of an ERC-4626 style vault
on top of the accounting pieces:

- :py:class:`~eth_fee_vault.vault.gate.CapGateController` decides whether a flow may go through
- :py:class:`~eth_fee_vault.vault.accrual.FeeAccrualEngine` brings management and performance fees up to date
- :py:class:`~eth_fee_vault.vault.conversion.ConversionEngine` turns assets into shares and back
- :py:class:`~eth_fee_vault.vault.ledger.ShareLedger` holds the share balances
- :py:class:`~eth_fee_vault.token.AssetLedger` moves the underlying tokens

Every flow commits its share ledger and state changes before any asset transfer is made.
If anything fails, all changes made by the flow are rolled back.

Example:

.. code-block:: python

    clock = ManualClock()
    asset = InMemoryAssetLedger(holder=vault_address)
    vault = FeeVault.create(
        asset,
        VaultConfig(fee_recipient=treasury, deposit_fee_bps=100, management_fee_bps=200),
        OwnerAuthorization(owner),
        clock=clock,
    )

    asset.mint(user, 10_000)
    asset.approve(user, vault_address, 10_000)
    shares = vault.deposit(10_000, receiver=user)
    assert shares == 9_900

    clock.increase(365 * 24 * 3600)
    assert vault.get_pending_management_fee() == 198
"""

import functools
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from eth_typing import HexAddress
from eth_utils import is_address

from eth_fee_vault.abi import ZERO_ADDRESS
from eth_fee_vault.timestamp import Clock, SystemClock
from eth_fee_vault.token import AssetLedger
from eth_fee_vault.utils import addr
from eth_fee_vault.vault.accrual import FeeAccrual, FeeAccrualEngine
from eth_fee_vault.vault.authorization import Authorization
from eth_fee_vault.vault.config import VaultConfig
from eth_fee_vault.vault.conversion import ConversionEngine, calculate_share_value
from eth_fee_vault.vault.errors import AuthorizationError, ExternalTransferFailure, ReentrancyError, ValidationError, VaultError
from eth_fee_vault.vault.fee import BPS_DENOMINATOR, MAX_UINT256, WAD, FeeData, FeeRates, validate_fee_bps
from eth_fee_vault.vault.gate import ALL_GATES, CapGateController, VaultGate
from eth_fee_vault.vault.ledger import ShareLedger
from eth_fee_vault.vault.state import VaultState


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FlowQuote:
    """Amounts moved by one deposit/mint/withdraw/redeem."""

    #: Shares minted or burned
    shares: int

    #: Assets before the deposit/withdrawal fee
    gross_assets: int

    #: Assets after the deposit/withdrawal fee
    net_assets: int

    #: Deposit/withdrawal fee in assets
    fee: int


def quote_deposit(assets: int, conversion: ConversionEngine, deposit_fee_bps: int) -> FlowQuote:
    fee = assets * deposit_fee_bps // BPS_DENOMINATOR
    net_assets = assets - fee
    shares = conversion.to_shares(net_assets, round_up=False)
    return FlowQuote(shares=shares, gross_assets=assets, net_assets=net_assets, fee=fee)


def quote_mint(shares: int, conversion: ConversionEngine, deposit_fee_bps: int) -> FlowQuote:
    net_assets = conversion.to_assets(shares, round_up=True)
    gross_assets = net_assets * BPS_DENOMINATOR // (BPS_DENOMINATOR - deposit_fee_bps)
    return FlowQuote(shares=shares, gross_assets=gross_assets, net_assets=net_assets, fee=gross_assets - net_assets)


def quote_withdraw(assets: int, conversion: ConversionEngine, withdrawal_fee_bps: int) -> FlowQuote:
    gross_assets = assets * BPS_DENOMINATOR // (BPS_DENOMINATOR - withdrawal_fee_bps)
    shares = conversion.to_shares(gross_assets, round_up=True)
    fee = gross_assets * withdrawal_fee_bps // BPS_DENOMINATOR
    return FlowQuote(shares=shares, gross_assets=gross_assets, net_assets=assets, fee=fee)


def quote_redeem(shares: int, conversion: ConversionEngine, withdrawal_fee_bps: int) -> FlowQuote:
    gross_assets = conversion.to_assets(shares, round_up=False)
    fee = gross_assets * withdrawal_fee_bps // BPS_DENOMINATOR
    return FlowQuote(shares=shares, gross_assets=gross_assets, net_assets=gross_assets - fee, fee=fee)


def nonreentrant(func):
    """Serialise vault operations and refuse nested calls.

    - Other threads wait for the running operation to finish
    - The same thread calling back in, e.g. from an asset transfer hook, gets :py:class:`ReentrancyError`
    """

    @functools.wraps(func)
    def wrapper(self: "FeeVault", *args, **kwargs):
        with self._lock:
            if self._entered:
                raise ReentrancyError(f"{func.__name__}() called while another operation is running on vault {self.address}")
            self._entered = True
            try:
                return func(self, *args, **kwargs)
            finally:
                self._entered = False

    return wrapper


def _check_amount(amount: int, name: str):
    assert type(amount) == int, f"{name} must be raw int, got {type(amount)}: {amount}"
    if amount <= 0:
        raise ValidationError(f"Zero {name}: {amount}")


class FeeVault:
    """Tokenised vault with deposit, withdrawal, management and performance fees.

    - All amounts are raw integers in the asset/share token units
    - Addresses can be given in any case
    - `from_` is the account acting, like `msg.sender`
    """

    def __init__(
        self,
        asset: AssetLedger,
        state: VaultState,
        authorization: Authorization,
        clock: Clock | None = None,
        gates: Iterable[VaultGate] = ALL_GATES,
    ):
        self.asset = asset
        self.state = state
        self.authorization = authorization
        self.clock = clock or SystemClock()
        self.share_ledger = ShareLedger(state)
        self.fee_engine = FeeAccrualEngine(state, self.share_ledger, asset, self.clock)
        self.gate = CapGateController(state, gates)
        self._lock = threading.RLock()
        self._entered = False

    def __repr__(self):
        return f"<FeeVault {self.address} shares:{self.state.total_shares} assets:{self.total_assets()}>"

    @classmethod
    def create(
        cls,
        asset: AssetLedger,
        config: VaultConfig,
        authorization: Authorization,
        clock: Clock | None = None,
    ) -> "FeeVault":
        """Set up a new vault.

        :raise ValidationError:
            Bad fee rates or fee recipient
        """
        clock = clock or SystemClock()
        state = config.create_state(clock.now())
        vault = cls(asset, state, authorization, clock=clock, gates=config.gates)
        logger.info(
            "Created vault %s, fee recipient %s, fees %s, gates %s",
            vault.address,
            state.fee_recipient,
            state.get_fee_rates(),
            sorted(g.value for g in config.gates),
        )
        return vault

    @property
    def address(self) -> HexAddress:
        return self.asset.holder

    #
    # Internals
    #

    @contextmanager
    def _atomic(self):
        state_snapshot = self.state.snapshot()
        ledger_snapshot = self.share_ledger.snapshot()
        try:
            yield
        except BaseException:
            self.state.restore(state_snapshot)
            self.share_ledger.restore(ledger_snapshot)
            raise

    def _move_assets(self, pulls: list[tuple[HexAddress, int]], pushes: list[tuple[HexAddress, int]]):
        """Pull assets into the vault, then push assets out.

        - Balances and allowances are checked before the first transfer
        - On ledgers that cannot undo a group of transfers, assets already pulled
          are sent back to the payer if a later transfer fails

        :raise InsufficientFundsError:
            A payer or the vault cannot cover the transfers, nothing was moved

        :raise ExternalTransferFailure:
            The asset ledger failed with something else than a vault error
        """
        pulls = [(from_, amount) for from_, amount in pulls if amount]
        pushes = [(to, amount) for to, amount in pushes if amount]
        self.asset.check_transfers(pulls, pushes)

        pulled = []
        try:
            with self.asset.atomic():
                for from_, amount in pulls:
                    self.asset.transfer_from(from_, self.address, amount)
                    pulled.append((from_, amount))
                for to, amount in pushes:
                    self.asset.transfer(to, amount)
        except Exception as e:
            if pulled and not self.asset.groups_transfers:
                self._refund(pulled)
            if isinstance(e, VaultError):
                raise
            raise ExternalTransferFailure(f"Asset transfer failed for vault {self.address}: {e}") from e

    def _refund(self, pulled: list[tuple[HexAddress, int]]):
        """Send back assets pulled by a failed flow."""
        for from_, amount in pulled:
            try:
                self.asset.transfer(from_, amount)
            except Exception as e:
                logger.error("Could not refund %d assets to %s from vault %s", amount, from_, self.address)
                raise ExternalTransferFailure(f"Refund of {amount} assets to {from_} failed, assets are left in vault {self.address}: {e}") from e
            logger.warning("Refunded %d assets to %s after a failed transfer", amount, from_)

    def _get_live_conversion(self) -> ConversionEngine:
        return ConversionEngine(self.total_assets(), self.state.total_shares)

    def _get_receiver_assets(self, receiver: HexAddress, conversion: ConversionEngine) -> int:
        return conversion.to_assets(self.share_ledger.balance_of(receiver), round_up=False)

    def _seed_high_water_mark(self, net_assets_in: int, total_assets_before: int):
        if self.state.high_water_mark == 0:
            price = calculate_share_value(total_assets_before + net_assets_in, self.state.total_shares)
            self.fee_engine.seed_high_water_mark(price)

    def _require_authorized(self, from_: HexAddress | str | None):
        if from_ is None or not self.authorization.is_authorized(from_):
            raise AuthorizationError(f"Only owner: {from_} may not change vault {self.address}")

    #
    # User flows
    #

    @nonreentrant
    def deposit(self, assets: int, receiver: HexAddress | str, from_: HexAddress | str | None = None) -> int:
        """Deposit assets and mint shares to `receiver`.

        The deposit fee is taken from `assets` and sent to the fee recipient.

        :param from_:
            Account the assets are pulled from, defaults to `receiver`

        :return:
            Shares minted
        """
        _check_amount(assets, "assets")
        receiver = addr(receiver)
        from_ = addr(from_) if from_ else receiver
        now = self.clock.now()

        with self._atomic():
            accrual = self.fee_engine.preview(now)
            conversion = accrual.get_conversion()
            self.gate.check_deposit(receiver, assets, conversion.total_assets, self._get_receiver_assets(receiver, conversion))

            self.fee_engine.collect(now)
            conversion = self._get_live_conversion()
            quote = quote_deposit(assets, conversion, self.state.deposit_fee_bps)
            if quote.shares == 0:
                raise ValidationError(f"Zero shares: deposit of {assets} is worth no shares")

            self.share_ledger.mint(receiver, quote.shares)
            self._seed_high_water_mark(quote.net_assets, conversion.total_assets)
            self._move_assets(
                pulls=[(from_, quote.gross_assets)],
                pushes=[(self.state.fee_recipient, quote.fee)],
            )

        logger.info("Deposit: %s deposited %d assets, deposit fee %d, %d shares minted to %s", from_, assets, quote.fee, quote.shares, receiver)
        return quote.shares

    @nonreentrant
    def mint(self, shares: int, receiver: HexAddress | str, from_: HexAddress | str | None = None) -> int:
        """Mint exactly `shares` to `receiver`.

        :param from_:
            Account the assets are pulled from, defaults to `receiver`

        :return:
            Gross assets pulled, deposit fee included
        """
        _check_amount(shares, "shares")
        receiver = addr(receiver)
        from_ = addr(from_) if from_ else receiver
        now = self.clock.now()

        with self._atomic():
            accrual = self.fee_engine.preview(now)
            conversion = accrual.get_conversion()
            preview = quote_mint(shares, conversion, self.state.deposit_fee_bps)
            self.gate.check_deposit(receiver, preview.gross_assets, conversion.total_assets, self._get_receiver_assets(receiver, conversion))

            self.fee_engine.collect(now)
            conversion = self._get_live_conversion()
            quote = quote_mint(shares, conversion, self.state.deposit_fee_bps)

            self.share_ledger.mint(receiver, shares)
            self._seed_high_water_mark(quote.net_assets, conversion.total_assets)
            self._move_assets(
                pulls=[(from_, quote.gross_assets)],
                pushes=[(self.state.fee_recipient, quote.fee)],
            )

        logger.info("Mint: %s paid %d assets, deposit fee %d, %d shares minted to %s", from_, quote.gross_assets, quote.fee, shares, receiver)
        return quote.gross_assets

    @nonreentrant
    def withdraw(self, assets: int, receiver: HexAddress | str, owner: HexAddress | str, from_: HexAddress | str | None = None) -> int:
        """Burn shares of `owner` so that `receiver` gets exactly `assets`.

        The withdrawal fee comes on top of `assets`.

        :param from_:
            Account acting, defaults to `owner`. Must have share allowance from `owner` otherwise.

        :return:
            Shares burned
        """
        _check_amount(assets, "assets")
        receiver = addr(receiver)
        owner = addr(owner)
        from_ = addr(from_) if from_ else owner
        now = self.clock.now()

        with self._atomic():
            self.gate.check_withdrawal(assets)
            self.fee_engine.collect(now)
            quote = quote_withdraw(assets, self._get_live_conversion(), self.state.withdrawal_fee_bps)

            if from_ != owner:
                self.share_ledger.spend_allowance(owner, from_, quote.shares)
            self.share_ledger.burn(owner, quote.shares)
            self._move_assets(
                pulls=[],
                pushes=[(self.state.fee_recipient, quote.fee), (receiver, assets)],
            )

        logger.info("Withdraw: %d shares of %s burned, %d assets to %s, withdrawal fee %d", quote.shares, owner, assets, receiver, quote.fee)
        return quote.shares

    @nonreentrant
    def redeem(self, shares: int, receiver: HexAddress | str, owner: HexAddress | str, from_: HexAddress | str | None = None) -> int:
        """Burn exactly `shares` of `owner` and send the assets, less the withdrawal fee, to `receiver`.

        :param from_:
            Account acting, defaults to `owner`. Must have share allowance from `owner` otherwise.

        :return:
            Net assets sent to `receiver`
        """
        _check_amount(shares, "shares")
        receiver = addr(receiver)
        owner = addr(owner)
        from_ = addr(from_) if from_ else owner
        now = self.clock.now()

        with self._atomic():
            if from_ != owner:
                self.share_ledger.spend_allowance(owner, from_, shares)
            self.fee_engine.collect(now)
            quote = quote_redeem(shares, self._get_live_conversion(), self.state.withdrawal_fee_bps)
            self.gate.check_withdrawal(quote.gross_assets)
            if quote.net_assets == 0:
                raise ValidationError(f"Zero assets: redeeming {shares} shares is worth no assets")

            self.share_ledger.burn(owner, shares)
            self._move_assets(
                pulls=[],
                pushes=[(self.state.fee_recipient, quote.fee), (receiver, quote.net_assets)],
            )

        logger.info("Redeem: %d shares of %s burned, %d assets to %s, withdrawal fee %d", shares, owner, quote.net_assets, receiver, quote.fee)
        return quote.net_assets

    @nonreentrant
    def collect_fees(self) -> FeeAccrual:
        """Collect management and performance fees.

        No-op if the previous collection was less than an hour ago.
        """
        with self._atomic():
            return self.fee_engine.collect()

    #
    # Admin
    #

    @nonreentrant
    def set_deposit_fee(self, bps: int, from_: HexAddress | str | None = None):
        self._require_authorized(from_)
        self.state.deposit_fee_bps = validate_fee_bps(bps, "deposit fee")
        logger.info("Deposit fee set to %d BPS", bps)

    @nonreentrant
    def set_withdrawal_fee(self, bps: int, from_: HexAddress | str | None = None):
        self._require_authorized(from_)
        self.state.withdrawal_fee_bps = validate_fee_bps(bps, "withdrawal fee")
        logger.info("Withdrawal fee set to %d BPS", bps)

    @nonreentrant
    def set_management_fee(self, bps: int, from_: HexAddress | str | None = None):
        """Change the management fee.

        Fees accrued so far are collected at the old rate first.
        """
        self._require_authorized(from_)
        validate_fee_bps(bps, "management fee")
        with self._atomic():
            self.fee_engine.collect()
            self.state.management_fee_bps = bps
        logger.info("Management fee set to %d BPS", bps)

    @nonreentrant
    def set_performance_fee(self, bps: int, from_: HexAddress | str | None = None):
        """Change the performance fee.

        Fees accrued so far are collected at the old rate first.
        """
        self._require_authorized(from_)
        validate_fee_bps(bps, "performance fee")
        with self._atomic():
            self.fee_engine.collect()
            self.state.performance_fee_bps = bps
        logger.info("Performance fee set to %d BPS", bps)

    @nonreentrant
    def set_fee_recipient(self, recipient: HexAddress | str, from_: HexAddress | str | None = None):
        self._require_authorized(from_)
        if not recipient or recipient.lower() == ZERO_ADDRESS:
            raise ValidationError("Zero address: fee recipient missing")
        if not is_address(recipient):
            raise ValidationError(f"Fee recipient is not an address: {recipient}")
        self.state.fee_recipient = addr(recipient)
        logger.info("Fee recipient set to %s", recipient)

    @nonreentrant
    def set_deposit_cap(self, amount: int, from_: HexAddress | str | None = None):
        """Cap total assets, 0 removes the cap."""
        self._require_authorized(from_)
        assert type(amount) == int and amount >= 0, f"Bad cap: {amount}"
        self.state.deposit_cap = amount
        logger.info("Deposit cap set to %d", amount)

    @nonreentrant
    def set_user_deposit_cap(self, amount: int, from_: HexAddress | str | None = None):
        """Cap the asset value a single receiver may hold, 0 removes the cap."""
        self._require_authorized(from_)
        assert type(amount) == int and amount >= 0, f"Bad cap: {amount}"
        self.state.user_deposit_cap = amount
        logger.info("User deposit cap set to %d", amount)

    @nonreentrant
    def set_withdrawal_cap(self, amount: int, from_: HexAddress | str | None = None):
        """Cap single withdrawals, 0 removes the cap."""
        self._require_authorized(from_)
        assert type(amount) == int and amount >= 0, f"Bad cap: {amount}"
        self.state.withdrawal_cap = amount
        logger.info("Withdrawal cap set to %d", amount)

    @nonreentrant
    def set_whitelist_enabled(self, enabled: bool, from_: HexAddress | str | None = None):
        self._require_authorized(from_)
        self.state.whitelist_enabled = bool(enabled)
        logger.info("Whitelist enabled: %s", enabled)

    @nonreentrant
    def update_whitelist(self, address: HexAddress | str, allowed: bool, from_: HexAddress | str | None = None):
        self._require_authorized(from_)
        self._update_whitelist(address, allowed)

    @nonreentrant
    def update_whitelist_batch(self, addresses: list[HexAddress | str], flags: list[bool], from_: HexAddress | str | None = None):
        """Add and remove several whitelist entries at once.

        :raise ValidationError:
            `addresses` and `flags` have different lengths
        """
        self._require_authorized(from_)
        if len(addresses) != len(flags):
            raise ValidationError(f"Length mismatch: {len(addresses)} addresses, {len(flags)} flags")
        checked = [addr(a) for a in addresses]
        for address, allowed in zip(checked, flags):
            self._update_whitelist(address, allowed)

    def _update_whitelist(self, address: HexAddress | str, allowed: bool):
        address = addr(address)
        if allowed:
            self.state.whitelist.add(address)
        else:
            self.state.whitelist.discard(address)
        logger.info("Whitelist %s: %s", address, allowed)

    @nonreentrant
    def set_emergency_mode(self, enabled: bool, from_: HexAddress | str | None = None):
        """Stop or restart deposits. Withdrawals always stay open."""
        self._require_authorized(from_)
        self.state.emergency_mode = bool(enabled)
        if enabled:
            logger.warning("Vault %s entered emergency mode", self.address)
        else:
            logger.info("Vault %s left emergency mode", self.address)

    #
    # Views
    #

    def total_assets(self) -> int:
        """Underlying assets held by the vault, read live."""
        return self.asset.balance_of(self.address)

    @property
    def total_supply(self) -> int:
        return self.state.total_shares

    def balance_of(self, holder: HexAddress | str) -> int:
        return self.share_ledger.balance_of(holder)

    def convert_to_shares(self, assets: int) -> int:
        """Shares for assets at the current totals, no fees."""
        return self._get_live_conversion().to_shares(assets, round_up=False)

    def convert_to_assets(self, shares: int) -> int:
        """Assets for shares at the current totals, no fees."""
        return self._get_live_conversion().to_assets(shares, round_up=False)

    def share_value(self) -> int:
        """Assets per share scaled by 1e18."""
        return calculate_share_value(self.total_assets(), self.state.total_shares)

    def fetch_share_price(self) -> Decimal:
        """Human readable assets per share."""
        return Decimal(self.share_value()) / Decimal(WAD)

    def _get_preview_conversion(self) -> ConversionEngine:
        return self.fee_engine.preview().get_conversion()

    def preview_deposit(self, assets: int) -> int:
        """Shares :py:meth:`deposit` would mint right now."""
        return quote_deposit(assets, self._get_preview_conversion(), self.state.deposit_fee_bps).shares

    def preview_mint(self, shares: int) -> int:
        """Gross assets :py:meth:`mint` would pull right now."""
        return quote_mint(shares, self._get_preview_conversion(), self.state.deposit_fee_bps).gross_assets

    def preview_withdraw(self, assets: int) -> int:
        """Shares :py:meth:`withdraw` would burn right now."""
        return quote_withdraw(assets, self._get_preview_conversion(), self.state.withdrawal_fee_bps).shares

    def preview_redeem(self, shares: int) -> int:
        """Net assets :py:meth:`redeem` would send right now."""
        return quote_redeem(shares, self._get_preview_conversion(), self.state.withdrawal_fee_bps).net_assets

    def max_deposit(self, receiver: HexAddress | str) -> int:
        """Most gross assets `receiver` can deposit now, 0 if blocked."""
        conversion = self._get_preview_conversion()
        return self.gate.get_max_deposit(receiver, conversion.total_assets, self._get_receiver_assets(receiver, conversion))

    def max_mint(self, receiver: HexAddress | str) -> int:
        """Most shares `receiver` can mint now, 0 if blocked."""
        limit = self.max_deposit(receiver)
        if limit in (0, MAX_UINT256):
            return limit
        # Largest net amount whose mint gross-up stays within the limit
        fee_bps = self.state.deposit_fee_bps
        net_limit = ((limit + 1) * (BPS_DENOMINATOR - fee_bps) - 1) // BPS_DENOMINATOR
        return self._get_preview_conversion().to_shares(net_limit, round_up=False)

    def max_withdraw(self, owner: HexAddress | str) -> int:
        """Most assets `owner` can get out with :py:meth:`withdraw` now."""
        conversion = self._get_preview_conversion()
        gross_limit = conversion.to_assets(self.share_ledger.balance_of(owner), round_up=False)
        # Largest assets whose gross-up stays within what the shares are worth
        fee_bps = self.state.withdrawal_fee_bps
        limit = ((gross_limit + 1) * (BPS_DENOMINATOR - fee_bps) - 1) // BPS_DENOMINATOR
        return min(limit, self.gate.get_max_withdrawal())

    def max_redeem(self, owner: HexAddress | str) -> int:
        """Most shares `owner` can redeem now."""
        balance = self.share_ledger.balance_of(owner)
        cap = self.gate.get_max_withdrawal()
        if cap == MAX_UINT256:
            return balance
        capped = self._get_preview_conversion().get_max_shares_for_assets(cap)
        return balance if capped is None else min(balance, capped)

    def get_fee_rates(self) -> FeeRates:
        """Deposit, withdrawal, management and performance fee in BPS."""
        return self.state.get_fee_rates()

    def get_fee_data(self) -> FeeData:
        return self.state.get_fee_rates().get_fee_data()

    def get_pending_management_fee(self) -> int:
        """Management fee accrued since the last collection, in assets."""
        return self.fee_engine.get_pending_management_fee()

    def get_strategic_params(self) -> tuple[int, int, bool, bool]:
        """Deposit cap, withdrawal cap, whitelist enabled, emergency mode."""
        return (
            self.state.deposit_cap,
            self.state.withdrawal_cap,
            self.state.whitelist_enabled,
            self.state.emergency_mode,
        )

    def is_whitelisted(self, address: HexAddress | str) -> bool:
        return self.gate.is_whitelisted(address)
