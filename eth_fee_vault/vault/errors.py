"""Vault error taxonomy.

- Every failure a vault call can raise derives from :py:class:`VaultError`
- Nothing is retried internally, the caller decides what to do
- Messages follow the revert strings of the on-chain vault where there was one
"""


class VaultError(Exception):
    """Base class for all vault failures."""


class ValidationError(VaultError):
    """Bad parameter: fee above max, zero recipient, mismatched batch lengths, zero amount.

    Raised before any state change.
    """


class AuthorizationError(VaultError):
    """Caller is not allowed to perform an admin operation."""


class InsufficientFundsError(VaultError):
    """Share or asset balance/allowance is smaller than the requested amount."""


class GateRejection(VaultError):
    """Deposit or withdrawal refused by one of the access gates.

    Raised before fees are accrued or the ledger is touched.
    """


class EmergencyModeActive(GateRejection):
    """Circuit breaker is on, no new inflows."""


class NotWhitelisted(GateRejection):
    """Whitelist is enabled and the receiver is not on it."""


class DepositCapExceeded(GateRejection):
    """Deposit would push the vault or the receiver over its cap."""


class WithdrawalCapExceeded(GateRejection):
    """Single withdrawal is larger than the per-call cap."""


class ExternalTransferFailure(VaultError):
    """The asset ledger failed to move tokens.

    The whole vault operation is rolled back. The original exception is chained.
    """


class ReentrancyError(VaultError):
    """A vault operation was entered while another one was still running on the same vault."""
