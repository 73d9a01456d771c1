"""Fee charging tokenised vault.

- :py:mod:`eth_fee_vault.vault.vault` for the user facing :py:class:`~eth_fee_vault.vault.vault.FeeVault`
- :py:mod:`eth_fee_vault.vault.conversion`, :py:mod:`eth_fee_vault.vault.accrual` and
  :py:mod:`eth_fee_vault.vault.gate` for the accounting pieces it is built from
"""
