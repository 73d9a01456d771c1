"""Vault fee rates.

- All rates are integer basis points, 10_000 BPS = 100%
- Deposit and withdrawal fees are taken in assets at the moment of the flow
- Management and performance fees are taken by minting new shares to the fee recipient
"""

from dataclasses import dataclass

from eth_fee_vault.vault.errors import ValidationError


#: 100% in basis points
BPS_DENOMINATOR = 10_000

#: No single fee may exceed 20%
MAX_FEE_BPS = 2_000

#: Management fee is prorated over this
SECONDS_PER_YEAR = 365 * 24 * 3600

#: Fee collection is skipped if the previous one happened less than this ago
MIN_COLLECTION_INTERVAL = 3600

#: Share price fixed point scale
WAD = 10**18

#: Reported as the max amount when nothing limits a flow
MAX_UINT256 = 2**256 - 1


def validate_fee_bps(bps: int, name: str = "fee") -> int:
    """Check a fee rate is within bounds.

    :raise ValidationError:
        If the fee is above :py:data:`MAX_FEE_BPS`
    """
    assert type(bps) == int, f"{name} must be int basis points, got {type(bps)}: {bps}"
    if bps < 0:
        raise ValidationError(f"Negative {name}: {bps}")
    if bps > MAX_FEE_BPS:
        raise ValidationError(f"Fee too high: {name} {bps} BPS, max {MAX_FEE_BPS} BPS")
    return bps


@dataclass(slots=True, frozen=True)
class FeeRates:
    """Snapshot of the four vault fee rates in basis points.

    Unpacks like the on-chain `getFeeRates()` tuple:

    .. code-block:: python

        deposit, withdrawal, management, performance = vault.get_fee_rates()
    """

    #: Taken from every deposit/mint
    deposit: int

    #: Taken from every withdraw/redeem
    withdrawal: int

    #: Annual rate on total assets
    management: int

    #: Share of profit above the high-water mark
    performance: int

    def __iter__(self):
        return iter((self.deposit, self.withdrawal, self.management, self.performance))

    def validate(self):
        validate_fee_bps(self.deposit, "deposit fee")
        validate_fee_bps(self.withdrawal, "withdrawal fee")
        validate_fee_bps(self.management, "management fee")
        validate_fee_bps(self.performance, "performance fee")

    def get_fee_data(self) -> "FeeData":
        return FeeData(
            management=self.management / BPS_DENOMINATOR,
            performance=self.performance / BPS_DENOMINATOR,
            deposit=self.deposit / BPS_DENOMINATOR,
            withdraw=self.withdrawal / BPS_DENOMINATOR,
        )


@dataclass(slots=True, frozen=True)
class FeeData:
    """Human readable fee fractions, 0.02 = 2%."""

    #: Annual management fee
    management: float

    #: Performance fee on profit
    performance: float

    #: Deposit fee
    deposit: float

    #: Withdraw fee
    withdraw: float
