from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from sentinel_entrypoint.entrypoint.exceptions import \
    ValidationException, ValidationExceptionCode
from sentinel_entrypoint.typing import Address

EXECUTE_SIGNATURE = "execute(address,uint256,bytes)"
EXECUTE_BATCH_SIGNATURE = "executeBatch(address[],uint256[],bytes[])"

EXECUTE_SELECTOR = function_signature_to_4byte_selector(EXECUTE_SIGNATURE)
EXECUTE_BATCH_SELECTOR = function_signature_to_4byte_selector(
    EXECUTE_BATCH_SIGNATURE)

EXECUTE_ABI = ["address", "uint256", "bytes"]
EXECUTE_BATCH_ABI = ["address[]", "uint256[]", "bytes[]"]


def verify_call_data_selector(call_data: bytes) -> bytes:
    if len(call_data) < 4:
        raise ValidationException(
            ValidationExceptionCode.InvalidCallData,
            "callData too short",
        )
    selector = call_data[:4]
    if selector not in (EXECUTE_SELECTOR, EXECUTE_BATCH_SELECTOR):
        raise ValidationException(
            ValidationExceptionCode.InvalidSelector,
            f"invalid callData selector 0x{selector.hex()}",
        )
    return selector


def decode_call_targets(call_data: bytes) -> list[Address]:
    """
    Returns every address the call data asks the account to call:
    a single target for execute, the whole target array for executeBatch.
    """
    selector = verify_call_data_selector(call_data)
    try:
        if selector == EXECUTE_SELECTOR:
            target, _, _ = decode(EXECUTE_ABI, call_data[4:])
            return [Address(target)]
        targets, _, _ = decode(EXECUTE_BATCH_ABI, call_data[4:])
        return [Address(target) for target in targets]
    except DecodingError as excp:
        raise ValidationException(
            ValidationExceptionCode.InvalidCallData,
            f"malformed callData: {excp}",
        )


def encode_execute_call_data(
    target: str, value: int, payload: bytes
) -> bytes:
    return EXECUTE_SELECTOR + encode(EXECUTE_ABI, [target, value, payload])


def encode_execute_batch_call_data(
    targets: list[str], values: list[int], payloads: list[bytes]
) -> bytes:
    return EXECUTE_BATCH_SELECTOR + encode(
        EXECUTE_BATCH_ABI, [targets, values, payloads])
