"""Management and performance fee accrual.

Fees are collected by minting new shares to the fee recipient, diluting the other holders,
instead of moving assets out. Total assets stay untouched, so conversions done later in
the same vault call see the same asset balance.

- Management fee: annual rate on total assets, prorated by the seconds since the last collection
- Performance fee: cut of the share price gain above the high-water mark

Collection is skipped when the previous one happened less than
:py:data:`~eth_fee_vault.vault.fee.MIN_COLLECTION_INTERVAL` ago.
"""

import logging
from dataclasses import dataclass

from eth_fee_vault.timestamp import Clock
from eth_fee_vault.token import AssetLedger
from eth_fee_vault.vault.conversion import ConversionEngine, calculate_share_value, convert_to_shares
from eth_fee_vault.vault.fee import BPS_DENOMINATOR, MIN_COLLECTION_INTERVAL, SECONDS_PER_YEAR, WAD
from eth_fee_vault.vault.ledger import ShareLedger
from eth_fee_vault.vault.state import VaultState


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FeeAccrual:
    """Outcome of one fee collection, applied or only simulated."""

    #: When the collection happened
    timestamp: int

    #: Seconds since the previous collection
    elapsed: int

    #: Vault assets the fees were calculated against
    total_assets: int

    #: Share supply before the fee shares
    total_shares: int

    #: Collection was too soon and nothing changed
    skipped: bool = False

    #: In assets
    management_fee: int = 0

    #: In assets
    performance_fee: int = 0

    #: Shares minted to the fee recipient
    fee_shares: int = 0

    #: High-water mark after the collection
    high_water_mark: int = 0

    @property
    def total_fee(self) -> int:
        return self.management_fee + self.performance_fee

    @property
    def total_shares_after(self) -> int:
        return self.total_shares + self.fee_shares

    def get_conversion(self) -> ConversionEngine:
        """Conversions as they will look right after this collection."""
        return ConversionEngine(self.total_assets, self.total_shares_after)


def calculate_management_fee(total_assets: int, management_fee_bps: int, elapsed: int) -> int:
    """Prorated management fee in assets."""
    if elapsed <= 0 or management_fee_bps == 0:
        return 0
    return total_assets * management_fee_bps * elapsed // (SECONDS_PER_YEAR * BPS_DENOMINATOR)


def calculate_performance_fee(share_price: int, high_water_mark: int, total_shares: int, performance_fee_bps: int) -> int:
    """Performance fee in assets on the gain above the high-water mark."""
    if share_price <= high_water_mark or performance_fee_bps == 0:
        return 0
    profit = (share_price - high_water_mark) * total_shares // WAD
    return profit * performance_fee_bps // BPS_DENOMINATOR


def calculate_fee_accrual(state: VaultState, total_assets: int, now: int) -> FeeAccrual:
    """Work out what a fee collection at `now` does, without touching anything."""
    last = state.last_fee_collection
    total_shares = state.total_shares
    elapsed = now - last

    if now <= last or elapsed < MIN_COLLECTION_INTERVAL:
        return FeeAccrual(
            timestamp=now,
            elapsed=max(elapsed, 0),
            total_assets=total_assets,
            total_shares=total_shares,
            skipped=True,
            high_water_mark=state.high_water_mark,
        )

    if total_assets == 0 or total_shares == 0:
        # Nothing to charge against, only the timestamp moves
        return FeeAccrual(
            timestamp=now,
            elapsed=elapsed,
            total_assets=total_assets,
            total_shares=total_shares,
            high_water_mark=state.high_water_mark,
        )

    management_fee = calculate_management_fee(total_assets, state.management_fee_bps, elapsed)

    share_price = calculate_share_value(total_assets, total_shares)
    high_water_mark = state.high_water_mark
    performance_fee = 0
    if share_price > high_water_mark:
        if state.performance_fee_bps != 0:
            performance_fee = calculate_performance_fee(share_price, high_water_mark, total_shares, state.performance_fee_bps)
            high_water_mark = share_price
        elif state.ratchet_high_water_mark:
            high_water_mark = share_price

    total_fee = management_fee + performance_fee
    fee_shares = convert_to_shares(total_fee, total_assets, total_shares, round_up=False) if total_fee else 0

    return FeeAccrual(
        timestamp=now,
        elapsed=elapsed,
        total_assets=total_assets,
        total_shares=total_shares,
        management_fee=management_fee,
        performance_fee=performance_fee,
        fee_shares=fee_shares,
        high_water_mark=high_water_mark,
    )


class FeeAccrualEngine:
    """Applies fee collections to a vault.

    Owns :py:attr:`VaultState.high_water_mark` and :py:attr:`VaultState.last_fee_collection`.
    """

    def __init__(self, state: VaultState, share_ledger: ShareLedger, asset: AssetLedger, clock: Clock):
        self.state = state
        self.share_ledger = share_ledger
        self.asset = asset
        self.clock = clock

    def preview(self, now: int | None = None) -> FeeAccrual:
        """What :py:meth:`collect` would do right now."""
        if now is None:
            now = self.clock.now()
        return calculate_fee_accrual(self.state, self.asset.balance_of(self.asset.holder), now)

    def collect(self, now: int | None = None) -> FeeAccrual:
        """Collect management and performance fees since the last collection.

        - No-op if called again within the minimum interval
        - Fee shares go to the current fee recipient

        :return:
            What happened
        """
        accrual = self.preview(now)

        if accrual.skipped:
            logger.debug("Fee collection skipped, only %d seconds since the last one", accrual.elapsed)
            return accrual

        if accrual.fee_shares:
            self.share_ledger.mint(self.state.fee_recipient, accrual.fee_shares)

        assert accrual.high_water_mark >= self.state.high_water_mark, f"High-water mark would go down: {self.state.high_water_mark} -> {accrual.high_water_mark}"
        self.state.high_water_mark = accrual.high_water_mark
        self.state.last_fee_collection = accrual.timestamp

        if accrual.total_fee:
            logger.info(
                "Fees collected: management %d, performance %d assets, %d shares minted to %s, high-water mark %d",
                accrual.management_fee,
                accrual.performance_fee,
                accrual.fee_shares,
                self.state.fee_recipient,
                accrual.high_water_mark,
            )
        return accrual

    def get_pending_management_fee(self, now: int | None = None) -> int:
        """Management fee accrued since the last collection, in assets.

        Ignores the minimum collection interval.
        """
        if now is None:
            now = self.clock.now()
        total_assets = self.asset.balance_of(self.asset.holder)
        if self.state.total_shares == 0 or total_assets == 0:
            return 0
        return calculate_management_fee(total_assets, self.state.management_fee_bps, now - self.state.last_fee_collection)

    def seed_high_water_mark(self, share_price: int):
        """Start the high-water mark at the first issuance price.

        Only has an effect while the mark is still zero.
        """
        if self.state.high_water_mark == 0 and share_price > 0:
            self.state.high_water_mark = share_price
            logger.info("High-water mark seeded at %d", share_price)
