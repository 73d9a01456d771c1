"""Walk a fee vault through deposit, yield, fee collection and redeem.

Vault parameters come from the environment, see :py:meth:`VaultConfig.from_environment`.

.. code-block:: shell

    export FEE_RECIPIENT=0x2222222222222222222222222222222222222222
    export DEPOSIT_FEE_BPS=100
    export WITHDRAWAL_FEE_BPS=50
    export MANAGEMENT_FEE_BPS=200
    export PERFORMANCE_FEE_BPS=1000
    export LOG_LEVEL=info
    python scripts/simulate-fee-vault.py

"""

import os
from decimal import Decimal

from eth_fee_vault.timestamp import ManualClock
from eth_fee_vault.token import InMemoryAssetLedger
from eth_fee_vault.utils import setup_console_logging
from eth_fee_vault.vault.authorization import OwnerAuthorization
from eth_fee_vault.vault.config import VaultConfig
from eth_fee_vault.vault.fee import SECONDS_PER_YEAR
from eth_fee_vault.vault.vault import FeeVault

VAULT = "0x1000000000000000000000000000000000000001"
OWNER = "0x1000000000000000000000000000000000000002"
USER = "0x1000000000000000000000000000000000000003"

setup_console_logging(default_log_level=os.environ.get("LOG_LEVEL", "warning"))

deposit_amount = Decimal(os.environ.get("DEPOSIT_AMOUNT", "10000"))
yield_amount = Decimal(os.environ.get("YIELD_AMOUNT", "1000"))

config = VaultConfig.from_environment()
clock = ManualClock()
asset = InMemoryAssetLedger(holder=VAULT, decimals=6, symbol="USDC")
vault = FeeVault.create(asset, config, OwnerAuthorization(OWNER), clock=clock)

deposit, withdrawal, management, performance = vault.get_fee_rates()
print(f"Vault: {vault.address}")
print(f"Fee recipient: {config.fee_recipient}")
print(f"Fees (BPS): deposit {deposit}, withdrawal {withdrawal}, management {management}, performance {performance}")

raw_deposit = asset.convert_to_raw(deposit_amount)
asset.mint(USER, raw_deposit)
asset.approve(USER, VAULT, raw_deposit)

shares = vault.deposit(raw_deposit, receiver=USER)
print(f"Deposited {deposit_amount} {asset.symbol}, received {shares:,} shares")
print(f"Share price: {vault.fetch_share_price():.6f} {asset.symbol}")

clock.increase(SECONDS_PER_YEAR)
asset.mint(VAULT, asset.convert_to_raw(yield_amount))
print(f"One year later, {yield_amount} {asset.symbol} of yield")
print(f"Pending management fee: {asset.convert_to_decimals(vault.get_pending_management_fee())} {asset.symbol}")

accrual = vault.collect_fees()
print(f"Management fee: {asset.convert_to_decimals(accrual.management_fee)} {asset.symbol}")
print(f"Performance fee: {asset.convert_to_decimals(accrual.performance_fee)} {asset.symbol}")
print(f"Fee shares minted: {accrual.fee_shares:,}")
print(f"Share price: {vault.fetch_share_price():.6f} {asset.symbol}")

received = vault.redeem(vault.balance_of(USER), receiver=USER, owner=USER)
print(f"Redeemed all shares for {asset.convert_to_decimals(received)} {asset.symbol}")
print(f"Fee recipient holds {asset.convert_to_decimals(asset.balance_of(config.fee_recipient))} {asset.symbol} and {vault.balance_of(config.fee_recipient):,} shares")
