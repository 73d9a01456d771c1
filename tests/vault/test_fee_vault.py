"""Deposit, mint, withdraw and redeem through a fee vault."""

from decimal import Decimal

import pytest
from web3 import Web3

from eth_fee_vault.token import InMemoryAssetLedger
from eth_fee_vault.vault.authorization import OwnerAuthorization
from eth_fee_vault.vault.config import VaultConfig
from eth_fee_vault.vault.errors import ExternalTransferFailure, InsufficientFundsError, ReentrancyError, ValidationError
from eth_fee_vault.vault.fee import BPS_DENOMINATOR, MAX_UINT256, MIN_COLLECTION_INTERVAL, SECONDS_PER_YEAR, WAD
from eth_fee_vault.vault.gate import NO_GATES
from eth_fee_vault.vault.vault import FeeVault

USER_BALANCE = 1_000_000 * 10**18


def test_empty_vault(vault, user1):
    assert vault.total_assets() == 0
    assert vault.total_supply == 0
    assert vault.share_value() == WAD
    assert vault.fetch_share_price() == Decimal(1)
    assert vault.preview_deposit(10_000) == 9_900
    assert vault.max_deposit(user1) == MAX_UINT256
    assert vault.max_mint(user1) == MAX_UINT256
    assert vault.max_withdraw(user1) == 0
    assert vault.max_redeem(user1) == 0
    # Redeeming on an empty vault converts 1:1, less the withdrawal fee
    assert vault.preview_redeem(10_000) == 10_000 - 50


def test_deposit_charges_deposit_fee(vault, asset, user1, fee_recipient):
    """Deposit 10000 with 1% deposit fee."""
    shares = vault.deposit(10_000, receiver=user1)

    assert shares == 9_900
    assert vault.balance_of(user1) == 9_900
    assert vault.total_supply == 9_900
    assert vault.total_assets() == 9_900
    assert asset.balance_of(fee_recipient) == 100
    assert asset.balance_of(user1) == USER_BALANCE - 10_000
    assert vault.state.high_water_mark == WAD


def test_deposit_from_other_account(vault, asset, user1, user2):
    shares = vault.deposit(10_000, receiver=user1, from_=user2)
    assert vault.balance_of(user1) == shares
    assert vault.balance_of(user2) == 0
    assert asset.balance_of(user1) == USER_BALANCE
    assert asset.balance_of(user2) == USER_BALANCE - 10_000


def test_management_fee_after_one_year(vault, clock, user1):
    vault.deposit(10_000, receiver=user1)
    clock.increase(SECONDS_PER_YEAR)
    assert vault.get_pending_management_fee() == pytest.approx(198, rel=0.01)


def test_performance_fee_on_profit(asset, owner, fee_recipient, clock, user1, vault_address):
    config = VaultConfig(fee_recipient=fee_recipient, performance_fee_bps=1000, gates=NO_GATES)
    vault = FeeVault.create(asset, config, OwnerAuthorization(owner), clock=clock)

    vault.deposit(10_000, receiver=user1)
    asset.mint(vault_address, 10_000)
    clock.increase(MIN_COLLECTION_INTERVAL)

    accrual = vault.collect_fees()

    assert accrual.performance_fee == 1_000
    assert accrual.management_fee == 0
    assert vault.balance_of(fee_recipient) == accrual.fee_shares == 500
    assert vault.state.high_water_mark == 2 * WAD


def test_principal_is_not_profit(vault, clock, user1):
    vault.deposit(10_000 * 10**18, receiver=user1)
    clock.increase(MIN_COLLECTION_INTERVAL)
    accrual = vault.collect_fees()
    assert accrual.performance_fee == 0
    assert accrual.management_fee > 0


def test_collect_fees_twice_within_interval(vault, clock, user1):
    vault.deposit(10_000 * 10**18, receiver=user1)
    clock.increase(SECONDS_PER_YEAR)
    vault.collect_fees()
    last = vault.state.last_fee_collection
    supply = vault.total_supply

    clock.increase(60)
    accrual = vault.collect_fees()

    assert accrual.skipped
    assert vault.state.last_fee_collection == last
    assert vault.total_supply == supply


def test_mint(vault, asset, user1, fee_recipient):
    preview = vault.preview_mint(9_900)
    assets = vault.mint(9_900, receiver=user1)

    assert assets == preview == 10_000
    assert vault.balance_of(user1) == 9_900
    assert asset.balance_of(fee_recipient) == 100
    assert vault.total_assets() == 9_900


def test_withdraw(vault, asset, user1, fee_recipient):
    vault.deposit(10_000 * 10**18, receiver=user1)
    balance_before = asset.balance_of(user1)
    recipient_before = asset.balance_of(fee_recipient)
    amount = 1_000 * 10**18

    preview = vault.preview_withdraw(amount)
    shares = vault.withdraw(amount, receiver=user1, owner=user1)

    gross = amount * BPS_DENOMINATOR // (BPS_DENOMINATOR - 50)
    assert shares == preview
    assert asset.balance_of(user1) - balance_before == amount
    assert asset.balance_of(fee_recipient) - recipient_before == gross * 50 // BPS_DENOMINATOR
    assert vault.balance_of(user1) == 9_900 * 10**18 - shares


def test_redeem(vault, asset, user1, fee_recipient):
    shares = vault.deposit(10_000 * 10**18, receiver=user1)
    assert shares == 9_900 * 10**18

    received = vault.redeem(shares, receiver=user1, owner=user1)

    assert received == 9_850_500 * 10**15
    assert vault.total_supply == 0
    assert vault.total_assets() == 0
    assert asset.balance_of(user1) == USER_BALANCE - 10_000 * 10**18 + received
    assert asset.balance_of(fee_recipient) == 149_500 * 10**15


def test_redeem_to_other_receiver(vault, asset, user1, user2):
    shares = vault.deposit(10_000, receiver=user1)
    received = vault.redeem(shares, receiver=user2, owner=user1)
    assert asset.balance_of(user2) == USER_BALANCE + received


def test_redeem_needs_allowance(vault, user1, user2):
    shares = vault.deposit(10_000, receiver=user1)

    with pytest.raises(InsufficientFundsError, match="Insufficient allowance"):
        vault.redeem(shares, receiver=user2, owner=user1, from_=user2)
    assert vault.balance_of(user1) == shares

    vault.share_ledger.approve(user1, user2, shares)
    vault.redeem(shares, receiver=user2, owner=user1, from_=user2)
    assert vault.balance_of(user1) == 0
    assert vault.share_ledger.allowance(user1, user2) == 0


def test_withdraw_needs_allowance(vault, user1, user2):
    vault.deposit(10_000 * 10**18, receiver=user1)
    with pytest.raises(InsufficientFundsError):
        vault.withdraw(10**18, receiver=user2, owner=user1, from_=user2)

    vault.share_ledger.approve(user1, user2, MAX_UINT256)
    vault.withdraw(10**18, receiver=user2, owner=user1, from_=user2)
    assert vault.share_ledger.allowance(user1, user2) == MAX_UINT256


def test_redeem_more_than_balance(vault, user1):
    shares = vault.deposit(10_000, receiver=user1)
    with pytest.raises(InsufficientFundsError, match="Insufficient shares"):
        vault.redeem(shares + 1, receiver=user1, owner=user1)
    assert vault.balance_of(user1) == shares


@pytest.mark.parametrize("amount", [0, -1])
def test_zero_amounts_rejected(vault, user1, amount):
    with pytest.raises(ValidationError):
        vault.deposit(amount, receiver=user1)
    with pytest.raises(ValidationError):
        vault.mint(amount, receiver=user1)
    with pytest.raises(ValidationError):
        vault.withdraw(amount, receiver=user1, owner=user1)
    with pytest.raises(ValidationError):
        vault.redeem(amount, receiver=user1, owner=user1)


def test_deposit_worth_zero_shares(vault, asset, user1, user2, vault_address):
    vault.deposit(100, receiver=user1)
    # Price jumps so high that one wei buys no shares
    asset.mint(vault_address, 10**18)
    with pytest.raises(ValidationError, match="Zero shares"):
        vault.deposit(1, receiver=user2)
    assert asset.balance_of(user2) == USER_BALANCE


def test_deposit_without_funds(vault, asset, user1):
    poor = "0x" + "55" * 20
    asset.approve(poor, vault.address, MAX_UINT256)
    with pytest.raises(InsufficientFundsError):
        vault.deposit(10_000, receiver=poor)
    assert vault.total_supply == 0
    assert vault.balance_of(poor) == 0


def test_previews_match_execution(vault, asset, clock, user1, user2, vault_address):
    """With pending fees and yield, previews equal what the flows do."""
    vault.deposit(100_000 * 10**18, receiver=user1)
    clock.increase(SECONDS_PER_YEAR // 2)
    asset.mint(vault_address, 7_777 * 10**18)

    preview = vault.preview_deposit(5_000 * 10**18)
    assert vault.deposit(5_000 * 10**18, receiver=user2) == preview

    clock.increase(SECONDS_PER_YEAR // 2)
    asset.mint(vault_address, 1_234 * 10**18)

    preview = vault.preview_mint(1_000 * 10**18)
    assert vault.mint(1_000 * 10**18, receiver=user2) == preview

    clock.increase(SECONDS_PER_YEAR // 4)
    preview = vault.preview_withdraw(3_000 * 10**18)
    assert vault.withdraw(3_000 * 10**18, receiver=user1, owner=user1) == preview

    clock.increase(SECONDS_PER_YEAR // 4)
    shares = vault.balance_of(user2)
    preview = vault.preview_redeem(shares)
    assert vault.redeem(shares, receiver=user2, owner=user2) == preview


def test_previews_have_no_side_effects(vault, clock, user1):
    vault.deposit(10_000 * 10**18, receiver=user1)
    clock.increase(SECONDS_PER_YEAR)
    state = vault.state.snapshot()
    supply = vault.total_supply

    vault.preview_deposit(10**18)
    vault.preview_mint(10**18)
    vault.preview_withdraw(10**18)
    vault.preview_redeem(10**18)
    vault.max_withdraw(user1)
    vault.max_redeem(user1)

    assert vault.state == state
    assert vault.total_supply == supply


def test_max_withdraw_is_exact(vault, user1, user2):
    vault.deposit(12_345_678_901, receiver=user1)
    vault.deposit(98_765_432_109, receiver=user2)

    limit = vault.max_withdraw(user1)
    with pytest.raises(InsufficientFundsError):
        vault.withdraw(limit + 1, receiver=user1, owner=user1)

    vault.withdraw(limit, receiver=user1, owner=user1)
    assert vault.balance_of(user1) <= 1


def test_max_redeem_is_balance(vault, user1):
    shares = vault.deposit(10_000, receiver=user1)
    assert vault.max_redeem(user1) == shares


def test_full_cycle_returns_most(vault, asset, clock, user1):
    """Deposit, wait a month, redeem everything."""
    amount = 1_000 * 10**18
    shares = vault.deposit(amount, receiver=user1)
    clock.increase(30 * 24 * 3600)
    received = vault.redeem(shares, receiver=user1, owner=user1)
    assert received / amount > 0.95
    assert received < amount


def test_checksummed_addresses(vault, user1):
    receiver = "0x" + "ab" * 20
    checksummed = Web3.to_checksum_address(receiver)
    assert checksummed != receiver

    shares = vault.deposit(10_000, receiver=checksummed, from_=user1)
    assert vault.balance_of(receiver) == shares
    assert vault.balance_of(checksummed) == shares
    assert vault.max_redeem(checksummed) == shares


class FailingPushLedger(InMemoryAssetLedger):
    """Outbound transfers blow up."""

    def transfer(self, to, amount):
        raise RuntimeError("Token paused")


def test_transfer_failure_rolls_back(owner, fee_config, clock, user1, vault_address):
    asset = FailingPushLedger(holder=vault_address)
    asset.mint(user1, 10_000)
    asset.approve(user1, vault_address, 10_000)
    vault = FeeVault.create(asset, fee_config, OwnerAuthorization(owner), clock=clock)

    with pytest.raises(ExternalTransferFailure) as exc_info:
        vault.deposit(10_000, receiver=user1)

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert vault.total_supply == 0
    assert vault.balance_of(user1) == 0
    assert vault.state.high_water_mark == 0
    assert asset.balance_of(user1) == 10_000
    assert asset.allowance(user1, vault_address) == 10_000


class ReentrantLedger(InMemoryAssetLedger):
    """Calls back into the vault while pulling tokens."""

    vault: FeeVault = None

    def transfer_from(self, from_, to, amount):
        self.vault.deposit(amount, receiver=from_)


def test_reentrancy_rejected(owner, fee_config, clock, user1, vault_address):
    asset = ReentrantLedger(holder=vault_address)
    asset.mint(user1, 10_000)
    asset.approve(user1, vault_address, 10_000)
    vault = FeeVault.create(asset, fee_config, OwnerAuthorization(owner), clock=clock)
    asset.vault = vault

    with pytest.raises(ReentrancyError):
        vault.deposit(10_000, receiver=user1)

    assert vault.total_supply == 0
    assert asset.balance_of(user1) == 10_000

    # Guard is released after the failure
    assert vault.collect_fees().skipped


def test_share_ledger_sum_matches_supply(vault, clock, user1, user2):
    vault.deposit(10_000 * 10**18, receiver=user1)
    vault.deposit(5_000 * 10**18, receiver=user2)
    clock.increase(SECONDS_PER_YEAR)
    vault.collect_fees()
    vault.share_ledger.transfer(user1, user2, 10**18)
    vault.redeem(10**18, receiver=user2, owner=user2)
    assert vault.share_ledger.get_balance_sum() == vault.total_supply
