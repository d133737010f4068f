from abc import ABC, abstractmethod

from sentinel_entrypoint.typing import Address
from sentinel_entrypoint.user_operation.user_operation import encode_nonce
from sentinel_entrypoint.utils.address import normalize_address


class NonceAuthority(ABC):
    @abstractmethod
    def get_nonce(self, sender: str, key: int) -> int:
        """Returns the full expected nonce, (key << 64) | sequence."""
        pass


class InMemoryNonceAuthority(NonceAuthority):
    sequences: dict[tuple[Address, int], int]

    def __init__(self) -> None:
        self.sequences = {}

    def get_nonce(self, sender: str, key: int) -> int:
        sequence = self.sequences.get((normalize_address(sender), key), 0)
        return encode_nonce(key, sequence)

    def set_sequence(self, sender: str, key: int, sequence: int) -> None:
        encode_nonce(key, sequence)  # range check
        self.sequences[(normalize_address(sender), key)] = sequence
