"""Shared vault fixtures.

- Plain fee vault with 1% deposit, 0.5% withdrawal, 2% management and 10% performance fees
- Strategic vault with deposit/withdrawal caps, whitelist and emergency mode
- Assets live in an :py:class:`InMemoryAssetLedger`, time in a :py:class:`ManualClock`
"""

import pytest

from eth_fee_vault.timestamp import ManualClock
from eth_fee_vault.token import InMemoryAssetLedger
from eth_fee_vault.vault.authorization import OwnerAuthorization
from eth_fee_vault.vault.config import VaultConfig
from eth_fee_vault.vault.fee import MAX_UINT256
from eth_fee_vault.vault.gate import ALL_GATES, NO_GATES
from eth_fee_vault.vault.vault import FeeVault

#: Starting asset balance of each test user
USER_BALANCE = 1_000_000 * 10**18

#: Strategic vault caps used in the original deployment tests
DEFAULT_DEPOSIT_CAP = 10_000_000 * 10**18
DEFAULT_WITHDRAWAL_CAP = 1_000_000 * 10**18


@pytest.fixture()
def vault_address() -> str:
    return "0x" + "10" * 20


@pytest.fixture()
def owner() -> str:
    return "0x" + "11" * 20


@pytest.fixture()
def fee_recipient() -> str:
    return "0x" + "22" * 20


@pytest.fixture()
def user1() -> str:
    return "0x" + "33" * 20


@pytest.fixture()
def user2() -> str:
    return "0x" + "44" * 20


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def asset(vault_address, user1, user2) -> InMemoryAssetLedger:
    """Asset ledger where both users hold tokens and have approved the vault."""
    asset = InMemoryAssetLedger(holder=vault_address)
    for user in (user1, user2):
        asset.mint(user, USER_BALANCE)
        asset.approve(user, vault_address, MAX_UINT256)
    return asset


@pytest.fixture()
def fee_config(fee_recipient) -> VaultConfig:
    return VaultConfig(
        fee_recipient=fee_recipient,
        deposit_fee_bps=100,
        withdrawal_fee_bps=50,
        management_fee_bps=200,
        performance_fee_bps=1000,
        gates=NO_GATES,
    )


@pytest.fixture()
def vault(asset, fee_config, owner, clock) -> FeeVault:
    """Plain fee vault."""
    return FeeVault.create(asset, fee_config, OwnerAuthorization(owner), clock=clock)


@pytest.fixture()
def strategic_config(fee_recipient) -> VaultConfig:
    return VaultConfig(
        fee_recipient=fee_recipient,
        deposit_fee_bps=100,
        withdrawal_fee_bps=50,
        management_fee_bps=200,
        performance_fee_bps=1000,
        deposit_cap=DEFAULT_DEPOSIT_CAP,
        withdrawal_cap=DEFAULT_WITHDRAWAL_CAP,
        gates=ALL_GATES,
    )


@pytest.fixture()
def strategic_vault(asset, strategic_config, owner, clock) -> FeeVault:
    """Vault with caps, whitelist and emergency mode."""
    return FeeVault.create(asset, strategic_config, OwnerAuthorization(owner), clock=clock)
