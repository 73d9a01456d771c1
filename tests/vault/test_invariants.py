"""Randomised operation sequences against the vault bookkeeping rules."""

import random

import pytest

from eth_fee_vault.vault.errors import VaultError
from eth_fee_vault.vault.fee import MAX_FEE_BPS


def run_random_operations(vault, asset, clock, users, owner, seed: int, steps=300):
    """Throw random flows at the vault and check the invariants after each step."""
    rnd = random.Random(seed)
    high_water_mark = vault.state.high_water_mark
    last_collection = vault.state.last_fee_collection

    for _ in range(steps):
        user = rnd.choice(users)
        action = rnd.choice(["deposit", "mint", "withdraw", "redeem", "collect", "time", "yield", "loss", "fee", "transfer"])
        try:
            if action == "deposit":
                amount = rnd.randint(1, 10**22)
                expected = vault.preview_deposit(amount)
                assert vault.deposit(amount, receiver=user) == expected
            elif action == "mint":
                shares = rnd.randint(1, 10**22)
                expected = vault.preview_mint(shares)
                assert vault.mint(shares, receiver=user) == expected
            elif action == "withdraw":
                limit = vault.max_withdraw(user)
                if limit:
                    amount = rnd.randint(1, limit)
                    expected = vault.preview_withdraw(amount)
                    assert vault.withdraw(amount, receiver=user, owner=user) == expected
            elif action == "redeem":
                limit = vault.max_redeem(user)
                if limit:
                    shares = rnd.randint(1, limit)
                    expected = vault.preview_redeem(shares)
                    assert vault.redeem(shares, receiver=user, owner=user) == expected
            elif action == "collect":
                vault.collect_fees()
            elif action == "time":
                clock.increase(rnd.randint(0, 30 * 24 * 3600))
            elif action == "yield":
                asset.mint(vault.address, rnd.randint(0, vault.total_assets() // 10 + 1))
            elif action == "loss":
                asset.transfer(owner, rnd.randint(0, vault.total_assets() // 20))
            elif action == "fee":
                vault.set_performance_fee(rnd.randint(0, MAX_FEE_BPS), from_=owner)
            elif action == "transfer":
                balance = vault.balance_of(user)
                if balance:
                    vault.share_ledger.transfer(user, rnd.choice(users), rnd.randint(0, balance))
        except VaultError:
            # Rejections are fine, state must still be consistent
            pass

        assert vault.share_ledger.get_balance_sum() == vault.total_supply
        assert vault.state.high_water_mark >= high_water_mark
        assert vault.state.last_fee_collection >= last_collection
        high_water_mark = vault.state.high_water_mark
        last_collection = vault.state.last_fee_collection


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_fee_vault_invariants(vault, asset, clock, user1, user2, owner, seed):
    run_random_operations(vault, asset, clock, [user1, user2], owner, seed)


@pytest.mark.parametrize("seed", [4, 5])
def test_strategic_vault_invariants(strategic_vault, asset, clock, user1, user2, owner, seed):
    strategic_vault.set_withdrawal_cap(2_000 * 10**18, from_=owner)
    strategic_vault.set_deposit_cap(50_000 * 10**18, from_=owner)
    run_random_operations(strategic_vault, asset, clock, [user1, user2], owner, seed)
