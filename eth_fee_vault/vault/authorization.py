"""Admin authorisation."""

from abc import ABC, abstractmethod

from eth_typing import HexAddress

from eth_fee_vault.utils import addr


class Authorization(ABC):
    """Decides who may call admin setters."""

    @abstractmethod
    def is_authorized(self, caller: HexAddress | str) -> bool:
        """Is `caller` allowed to change vault parameters."""


class OwnerAuthorization(Authorization):
    """Single owner account."""

    def __init__(self, owner: HexAddress | str):
        self.owner = addr(owner)

    def __repr__(self):
        return f"<OwnerAuthorization {self.owner}>"

    def is_authorized(self, caller: HexAddress | str) -> bool:
        return caller is not None and caller.lower() == self.owner
