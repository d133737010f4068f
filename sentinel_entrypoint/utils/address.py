import rlp
from eth_utils import keccak, to_bytes, to_checksum_address

from sentinel_entrypoint.typing import Address

ZERO_ADDRESS = Address("0x0000000000000000000000000000000000000000")


def normalize_address(address: str) -> Address:
    return Address(to_checksum_address(address))


def is_same_address(first: str | None, second: str | None) -> bool:
    if first is None or second is None:
        return False
    return first.lower() == second.lower()


def get_create_address(deployer: str, nonce: int) -> Address:
    encoded = rlp.encode([to_bytes(hexstr=deployer), nonce])
    return normalize_address("0x" + keccak(encoded)[12:].hex())


def get_create2_address(
    deployer: str, salt: bytes, init_code_hash: bytes
) -> Address:
    preimage = b"\xff" + to_bytes(hexstr=deployer) + salt + init_code_hash
    return normalize_address("0x" + keccak(preimage)[12:].hex())
