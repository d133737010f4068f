from eth_abi import decode
from eth_abi.exceptions import DecodingError

from .encode import ERROR_SELECTOR, FAILED_OP_SELECTOR, USER_OPERATION_ABI


def decode_failed_op(revert_data: bytes) -> tuple[int, str]:
    if revert_data[:4] != FAILED_OP_SELECTOR:
        raise ValueError("not a FailedOp revert")
    operation_index, reason = decode(["uint256", "string"], revert_data[4:])
    return operation_index, reason


def decode_revert_reason(revert_data: bytes) -> str | None:
    """
    Returns the Error(string) message carried by a revert payload,
    or None when the payload is empty or uses another selector.
    """
    if revert_data[:4] != ERROR_SELECTOR:
        return None
    try:
        (reason,) = decode(["string"], revert_data[4:])
    except DecodingError:
        return None
    return reason


def decode_handleops_calldata(call_data: bytes) -> list[tuple]:
    (user_operations_list,) = decode(
        [f"{USER_OPERATION_ABI}[]"], call_data[4:])
    return list(user_operations_list)
