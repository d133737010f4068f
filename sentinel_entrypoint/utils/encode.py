from typing import Any

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

USER_OPERATION_ABI = (
    "(address,uint256,bytes,bytes,uint256,uint256,uint256,uint256,uint256,bytes,bytes)"
)

ERROR_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
FAILED_OP_SELECTOR = bytes.fromhex("220266b6")  # FailedOp(uint256,string)
HANDLE_OPS_SELECTOR = function_signature_to_4byte_selector(
    f"handleOps({USER_OPERATION_ABI}[])")
GET_NONCE_SELECTOR = function_signature_to_4byte_selector(
    "getNonce(address,uint192)")


def encode_error_revert(reason: str) -> bytes:
    return ERROR_SELECTOR + encode(["string"], [reason])


def encode_failed_op_revert(operation_index: int, reason: str) -> bytes:
    return FAILED_OP_SELECTOR + encode(
        ["uint256", "string"], [operation_index, reason])


def encode_handleops_calldata(user_operations_list: list[list[Any]]) -> bytes:
    params = encode([f"{USER_OPERATION_ABI}[]"], [user_operations_list])
    return HANDLE_OPS_SELECTOR + params


def encode_get_nonce_calldata(sender: str, key: int) -> bytes:
    return GET_NONCE_SELECTOR + encode(["address", "uint192"], [sender, key])
