from dataclasses import dataclass
from pathlib import Path

from eth_account import Account

from sentinel_entrypoint.typing import Address


@dataclass(frozen=True)
class KeyPair:
    address: Address
    # 0x prefixed, lowercase
    private_key: str


def load_key(private_key: str | bytes) -> KeyPair:
    """
    Derives the checksum address of a secp256k1 private key.
    Raises ValueError when the key is not 32 bytes.
    """
    account = Account.from_key(private_key)
    return KeyPair(
        Address(account.address), "0x" + bytes(account.key).hex())


def load_keystore(keystore_file_path: str, password: str) -> KeyPair:
    """Decrypts a V3 keystore file, raising ValueError on a wrong password."""
    encrypted_key = Path(keystore_file_path).read_text()
    return load_key(Account.decrypt(encrypted_key, password))
