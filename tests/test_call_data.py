import pytest
from eth_utils import function_signature_to_4byte_selector

from sentinel_entrypoint.entrypoint.exceptions import \
    ValidationException, ValidationExceptionCode
from sentinel_entrypoint.user_operation.call_data import (
    EXECUTE_BATCH_SELECTOR, EXECUTE_SELECTOR, decode_call_targets,
    encode_execute_batch_call_data, encode_execute_call_data,
    verify_call_data_selector)

FIRST = "0x1111111111111111111111111111111111111111"
SECOND = "0x2222222222222222222222222222222222222222"


def test_selectors_match_account_interface():
    assert EXECUTE_SELECTOR == function_signature_to_4byte_selector(
        "execute(address,uint256,bytes)")
    assert EXECUTE_SELECTOR.hex() == "b61d27f6"
    assert EXECUTE_BATCH_SELECTOR == function_signature_to_4byte_selector(
        "executeBatch(address[],uint256[],bytes[])")


def test_execute_target():
    call_data = encode_execute_call_data(FIRST, 1, b"\x01\x02")

    assert verify_call_data_selector(call_data) == EXECUTE_SELECTOR
    assert decode_call_targets(call_data) == [FIRST]


def test_execute_batch_targets():
    call_data = encode_execute_batch_call_data(
        [FIRST, SECOND, FIRST], [], [b"", b"", b""])

    assert decode_call_targets(call_data) == [FIRST, SECOND, FIRST]


def test_execute_batch_without_targets():
    call_data = encode_execute_batch_call_data([], [], [])

    assert decode_call_targets(call_data) == []


@pytest.mark.parametrize("call_data", [b"", b"\xb6", b"\xb6\x1d\x27"])
def test_call_data_too_short(call_data):
    with pytest.raises(ValidationException) as excinfo:
        verify_call_data_selector(call_data)
    assert excinfo.value.exception_code == \
        ValidationExceptionCode.InvalidCallData


def test_unknown_selector():
    with pytest.raises(ValidationException) as excinfo:
        decode_call_targets(bytes.fromhex("a9059cbb") + b"\x00" * 64)
    assert excinfo.value.exception_code == \
        ValidationExceptionCode.InvalidSelector
    assert excinfo.value.message == "invalid callData selector 0xa9059cbb"


def test_malformed_arguments():
    with pytest.raises(ValidationException) as excinfo:
        decode_call_targets(EXECUTE_BATCH_SELECTOR + b"\x00" * 10)
    assert excinfo.value.exception_code == \
        ValidationExceptionCode.InvalidCallData
