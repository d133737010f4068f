import logging

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError as EthUtilsValidationError
from eth_utils import function_signature_to_4byte_selector, keccak

from sentinel_entrypoint.chain.execution_substrate import \
    Contract, ExecutionSubstrate, Revert
from sentinel_entrypoint.entrypoint.exceptions import (
    OwnershipException, OwnershipExceptionCode,
    ValidationException, ValidationExceptionCode)
from sentinel_entrypoint.typing import Address
from sentinel_entrypoint.user_operation.user_operation import UserOperation
from sentinel_entrypoint.utils.address import \
    is_same_address, normalize_address
from sentinel_entrypoint.utils.encode import \
    USER_OPERATION_ABI, encode_error_revert
from sentinel_entrypoint.validation.validation_data import pack_validation_data
from .models import \
    SponsorshipApproved, SponsorshipResult, SponsorshipSignatureMismatch

VALID_TIMESTAMP_OFFSET = 20
SIGNATURE_OFFSET = 84

GET_HASH_SELECTOR = function_signature_to_4byte_selector(
    f"getHash({USER_OPERATION_ABI},uint48,uint48)")
GET_SPONSOR_SELECTOR = function_signature_to_4byte_selector("verifyingSigner()")


def get_sponsor_hash(
    user_operation: UserOperation,
    chain_id: int,
    paymaster_address: str,
    sponsor_address: str,
    valid_until: int,
    valid_after: int,
) -> bytes:
    # only the selector of the call data is signed
    selector = user_operation.call_data[:4].ljust(4, b"\x00")
    user_operation_digest = keccak(
        encode(
            ["address", "uint256", "bytes4"],
            [user_operation.sender_address, user_operation.nonce, selector],
        )
    )
    return keccak(
        encode(
            ["bytes32", "uint256", "address", "address", "uint48", "uint48"],
            [
                user_operation_digest,
                chain_id,
                paymaster_address,
                sponsor_address,
                valid_until,
                valid_after,
            ],
        )
    )


def parse_paymaster_and_data(
    paymaster_and_data: bytes,
) -> tuple[int, int, bytes]:
    if len(paymaster_and_data) < SIGNATURE_OFFSET:
        raise ValidationException(
            ValidationExceptionCode.InvalidPaymasterSignatureLength,
            "VerifyingPaymaster: invalid signature length in paymasterAndData",
        )
    try:
        valid_until, valid_after = decode(
            ["uint48", "uint48"],
            paymaster_and_data[VALID_TIMESTAMP_OFFSET:SIGNATURE_OFFSET],
        )
    except DecodingError:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            "VerifyingPaymaster: invalid time range in paymasterAndData",
        )
    signature = paymaster_and_data[SIGNATURE_OFFSET:]
    return valid_until, valid_after, signature


def recover_signer(digest: bytes, signature: bytes) -> Address | None:
    message = encode_defunct(primitive=digest)
    try:
        if len(signature) == 64:
            # EIP-2098 compact signature: r || (yParity << 255 | s)
            r = int.from_bytes(signature[:32], "big")
            y_parity_and_s = int.from_bytes(signature[32:], "big")
            s = y_parity_and_s & ((1 << 255) - 1)
            v = (y_parity_and_s >> 255) + 27
            signer = Account.recover_message(message, vrs=(v, r, s))
        else:
            signer = Account.recover_message(message, signature=signature)
    except (BadSignature, EthUtilsValidationError, ValueError) as excp:
        logging.debug(f"signature recovery failed: {excp}")
        return None
    return Address(signer)


class VerifyingPaymaster(Contract):
    """
    Sponsors operations that carry a signature of the configured sponsor
    over get_hash(op, valid_until, valid_after).
    A wrong signer is reported through the returned validation data,
    malformed or out-of-window requests abort.
    """
    owner: Address
    sponsor: Address

    def __init__(
        self,
        chain: ExecutionSubstrate,
        address: Address,
        owner: str,
        sponsor: str,
    ) -> None:
        super().__init__(chain, address)
        self.owner = normalize_address(owner)
        self.sponsor = normalize_address(sponsor)

    def get_hash(
        self, user_operation: UserOperation, valid_until: int, valid_after: int
    ) -> bytes:
        return get_sponsor_hash(
            user_operation,
            self.chain.chain_id,
            self.address,
            self.sponsor,
            valid_until,
            valid_after,
        )

    def check_sponsorship(
        self, user_operation: UserOperation
    ) -> SponsorshipResult:
        valid_until, valid_after, signature = parse_paymaster_and_data(
            user_operation.paymaster_and_data)

        if len(signature) not in (64, 65):
            raise ValidationException(
                ValidationExceptionCode.InvalidPaymasterSignatureLength,
                "VerifyingPaymaster: invalid signature length in paymasterAndData",
            )

        now = self.chain.timestamp
        if not (valid_after <= now < valid_until):
            raise ValidationException(
                ValidationExceptionCode.PaymasterExpiredOrNotDue,
                "VerifyingPaymaster: expired or not due",
            )

        digest = self.get_hash(user_operation, valid_until, valid_after)
        signer = recover_signer(digest, signature)
        if not is_same_address(signer, self.sponsor):
            logging.debug(
                f"sponsor signature recovered to {signer}, "
                f"expected {self.sponsor}"
            )
            return SponsorshipSignatureMismatch(valid_until, valid_after)
        return SponsorshipApproved(valid_until, valid_after)

    def validate_paymaster_user_op(
        self,
        user_operation: UserOperation,
        user_operation_hash: bytes,
        max_cost: int,
    ) -> tuple[bytes, int]:
        logging.debug(
            f"validating sponsorship for 0x{user_operation_hash.hex()} "
            f"max cost {max_cost}"
        )
        sponsorship = self.check_sponsorship(user_operation)
        validation_data = pack_validation_data(
            isinstance(sponsorship, SponsorshipSignatureMismatch),
            sponsorship.valid_until,
            sponsorship.valid_after,
        )
        return b"", validation_data

    def get_sponsor(self) -> Address:
        return self.sponsor

    def set_sponsor(self, caller: str, sponsor: str) -> None:
        if not is_same_address(caller, self.owner):
            raise OwnershipException(
                OwnershipExceptionCode.NotOwner,
                "Ownable: caller is not the owner",
            )
        self.sponsor = normalize_address(sponsor)
        logging.info(f"paymaster {self.address} sponsor set to {self.sponsor}")

    def dispatch(self, caller: Address, value: int, call_data: bytes) -> bytes:
        selector = call_data[:4]
        if selector == GET_SPONSOR_SELECTOR:
            return encode(["address"], [self.sponsor])
        if selector == GET_HASH_SELECTOR:
            try:
                user_operation_list, valid_until, valid_after = decode(
                    [USER_OPERATION_ABI, "uint48", "uint48"], call_data[4:])
            except DecodingError:
                raise Revert()
            user_operation = UserOperation.from_list(user_operation_list)
            return encode(
                ["bytes32"],
                [self.get_hash(user_operation, valid_until, valid_after)],
            )
        raise Revert(encode_error_revert("VerifyingPaymaster: unknown call"))
