"""Shares and assets conversion.

Pure integer math, no state. Rounding always goes in the vault's favour:

- Round up when the caller names the output they want and we compute what they must give
  (mint, withdraw and their previews)
- Round down when the caller gives an input and we compute what they get
  (deposit, redeem and their previews)
"""

from dataclasses import dataclass

from eth_fee_vault.vault.fee import WAD


def mul_div(a: int, b: int, c: int, round_up=False) -> int:
    """Calculate `a * b / c` without losing precision before the division.

    :param round_up:
        Use ceiling division instead of floor
    """
    assert c > 0, f"Division by zero: {a} * {b} / {c}"
    if round_up:
        return (a * b + c - 1) // c
    return a * b // c


def convert_to_shares(assets: int, total_assets: int, total_shares: int, round_up=False) -> int:
    """How many shares `assets` is worth.

    An empty vault, or a vault whose assets are gone, converts 1:1.
    """
    if total_shares == 0 or total_assets == 0:
        return assets
    return mul_div(assets, total_shares, total_assets, round_up)


def convert_to_assets(shares: int, total_assets: int, total_shares: int, round_up=False) -> int:
    """How many assets `shares` is worth.

    With no shares issued yet this converts 1:1.
    """
    if total_shares == 0:
        return shares
    return mul_div(shares, total_assets, total_shares, round_up)


def calculate_share_value(total_assets: int, total_shares: int) -> int:
    """Assets per share scaled by 1e18.

    1e18 when no shares exist.
    """
    if total_shares == 0:
        return WAD
    return total_assets * WAD // total_shares


@dataclass(slots=True, frozen=True)
class ConversionEngine:
    """Conversions against a fixed pair of vault totals.

    Build one from the live totals for execution, or from simulated
    post-fee-accrual totals for previews.
    """

    total_assets: int

    total_shares: int

    def __post_init__(self):
        assert self.total_assets >= 0, f"Negative total assets: {self.total_assets}"
        assert self.total_shares >= 0, f"Negative total shares: {self.total_shares}"

    def to_shares(self, assets: int, round_up=False) -> int:
        return convert_to_shares(assets, self.total_assets, self.total_shares, round_up)

    def to_assets(self, shares: int, round_up=False) -> int:
        return convert_to_assets(shares, self.total_assets, self.total_shares, round_up)

    def share_value(self) -> int:
        return calculate_share_value(self.total_assets, self.total_shares)

    def get_max_shares_for_assets(self, asset_limit: int) -> int | None:
        """Largest share amount whose round-down asset value stays within `asset_limit`.

        :return:
            `None` when any amount of shares is worth zero assets
        """
        if self.total_shares == 0:
            return asset_limit
        if self.total_assets == 0:
            return None
        # floor(s * A / S) <= limit  <=>  s * A < (limit + 1) * S
        return ((asset_limit + 1) * self.total_shares - 1) // self.total_assets
