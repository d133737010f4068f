from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_bytes

from sentinel_entrypoint.user_operation.user_operation import UserOperation
from .verifying_paymaster import get_sponsor_hash


def build_paymaster_and_data(
    paymaster_address: str,
    valid_until: int,
    valid_after: int,
    signature: bytes,
) -> bytes:
    return (
        to_bytes(hexstr=paymaster_address) +
        encode(["uint48", "uint48"], [valid_until, valid_after]) +
        signature
    )


def sign_paymaster_and_data(
    user_operation: UserOperation,
    paymaster_address: str,
    chain_id: int,
    sponsor_private_key: str,
    valid_until: int,
    valid_after: int,
) -> bytes:
    """
    Off-chain side of the sponsorship: signs the operation for the given
    window and returns the paymasterAndData the operation should carry.
    """
    sponsor = Account.from_key(sponsor_private_key)
    digest = get_sponsor_hash(
        user_operation,
        chain_id,
        paymaster_address,
        sponsor.address,
        valid_until,
        valid_after,
    )
    signed_message = Account.sign_message(
        encode_defunct(primitive=digest), private_key=sponsor_private_key
    )
    return build_paymaster_and_data(
        paymaster_address, valid_until, valid_after, signed_message.signature
    )
