import logging

from sentinel_entrypoint.typing import Address
from sentinel_entrypoint.utils.address import \
    is_same_address, normalize_address
from .exceptions import OwnershipException, OwnershipExceptionCode

INITIAL_EPOCH = 1


class Whitelist:
    """
    Versioned set of approved call targets.

    An address is whitelisted only while the epoch it was last stamped with
    equals the current epoch, so replacing the whole set costs one epoch bump
    plus one write per new address and never touches the old entries.
    """
    owner: Address
    epoch: int
    versions: dict[Address, int]

    def __init__(self, owner: Address, addresses: list[str]) -> None:
        self.owner = normalize_address(owner)
        self.epoch = INITIAL_EPOCH
        self.versions = {}
        self._stamp(addresses)

    def is_whitelisted(self, address: str) -> bool:
        return self.versions.get(normalize_address(address)) == self.epoch

    def update_whitelist(self, caller: str, addresses: list[str]) -> None:
        if not is_same_address(caller, self.owner):
            raise OwnershipException(
                OwnershipExceptionCode.NotOwner,
                "Ownable: caller is not the owner",
            )
        self.epoch += 1
        self._stamp(addresses)
        logging.info(
            f"whitelist replaced with {len(addresses)} addresses "
            f"at epoch {self.epoch}"
        )

    def _stamp(self, addresses: list[str]) -> None:
        for address in addresses:
            self.versions[normalize_address(address)] = self.epoch
