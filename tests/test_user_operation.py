import pytest
from eth_abi import encode
from eth_utils import keccak

from sentinel_entrypoint.entrypoint.exceptions import \
    ValidationException, ValidationExceptionCode
from sentinel_entrypoint.user_operation.user_operation import (
    MAX_NONCE_KEY, NONCE_SEQUENCE_MASK, UserOperation, decode_nonce,
    encode_nonce, get_user_operation_hash, pack_user_operation)

SENDER = "0x1306b01bc3e4ad202612d3843387e94737673f53"
PAYMASTER = "0x2222222222222222222222222222222222222222"


def user_operation_json(**overrides):
    user_operation = {
        "sender": SENDER,
        "nonce": "0x1",
        "initCode": "0x",
        "callData": "0xb61d27f6",
        "callGasLimit": "0x5208",
        "verificationGasLimit": "0x186a0",
        "preVerificationGas": "0xc350",
        "maxFeePerGas": "0xa",
        "maxPriorityFeePerGas": "0x1",
        "paymasterAndData": "0x",
        "signature": "0x",
    }
    user_operation.update(overrides)
    return user_operation


def test_from_json():
    user_operation = UserOperation.from_json(user_operation_json())

    assert user_operation.sender_address == SENDER
    assert user_operation.nonce == 1
    assert user_operation.call_data == bytes.fromhex("b61d27f6")
    assert user_operation.call_gas_limit == 21000
    assert user_operation.paymaster_and_data == b""


def test_json_round_trip():
    user_operation_dict = user_operation_json()

    user_operation = UserOperation.from_json(user_operation_dict)

    assert user_operation.get_user_operation_json() == user_operation_dict


@pytest.mark.parametrize(
    "overrides",
    [
        {"sender": "0x1234"},
        {"nonce": "12"},
        {"nonce": "0xzz"},
        {"callData": "b61d27f6"},
        {"signature": "0x0g"},
        {"maxFeePerGas": None},
        {"nonce": hex(1 << 256)},
        {"callGasLimit": hex(1 << 256)},
    ],
)
def test_from_json_rejects_invalid_fields(overrides):
    with pytest.raises(ValidationException) as excinfo:
        UserOperation.from_json(user_operation_json(**overrides))
    assert excinfo.value.exception_code == ValidationExceptionCode.InvalidFields


def test_from_json_rejects_missing_and_extra_fields():
    user_operation_dict = user_operation_json()
    del user_operation_dict["signature"]
    with pytest.raises(ValidationException):
        UserOperation.from_json(user_operation_dict)

    with pytest.raises(ValidationException):
        UserOperation.from_json(user_operation_json(extra="0x"))

    with pytest.raises(ValidationException):
        UserOperation.from_json(["not", "a", "dict"])


def test_from_json_accepts_max_uint256():
    user_operation = UserOperation.from_json(
        user_operation_json(nonce=hex((1 << 256) - 1)))

    assert user_operation.nonce == (1 << 256) - 1


def test_nonce_split():
    nonce = (5 << 64) | 9

    assert decode_nonce(nonce) == (5, 9)
    assert encode_nonce(5, 9) == nonce
    user_operation = UserOperation(SENDER, nonce)
    assert user_operation.nonce_key == 5
    assert user_operation.nonce_sequence == 9


def test_nonce_extremes():
    nonce = encode_nonce(MAX_NONCE_KEY, NONCE_SEQUENCE_MASK)

    assert nonce == 2**256 - 1
    assert decode_nonce(nonce) == (MAX_NONCE_KEY, NONCE_SEQUENCE_MASK)


@pytest.mark.parametrize(
    "key, sequence",
    [(MAX_NONCE_KEY + 1, 0), (0, NONCE_SEQUENCE_MASK + 1), (-1, 0)],
)
def test_encode_nonce_out_of_range(key, sequence):
    with pytest.raises(ValueError):
        encode_nonce(key, sequence)


def test_factory_and_paymaster_addresses():
    user_operation = UserOperation(
        SENDER,
        0,
        init_code=bytes.fromhex(PAYMASTER[2:]) + b"\x01",
        paymaster_and_data=bytes.fromhex(PAYMASTER[2:]),
    )
    assert user_operation.factory_address == PAYMASTER
    assert user_operation.paymaster_address == PAYMASTER

    bare = UserOperation(SENDER, 0, init_code=bytes.fromhex(PAYMASTER[2:]))
    assert bare.factory_address is None
    assert bare.paymaster_address is None
    assert bare.call_selector is None


def test_required_prefund_accounts_for_paymaster():
    user_operation = UserOperation(
        SENDER,
        0,
        call_gas_limit=10,
        verification_gas_limit=100,
        pre_verification_gas=1,
        max_fee_per_gas=2,
    )
    assert user_operation.get_required_prefund() == (1 + 100 + 10) * 2

    sponsored = UserOperation(
        SENDER,
        0,
        call_gas_limit=10,
        verification_gas_limit=100,
        pre_verification_gas=1,
        max_fee_per_gas=2,
        paymaster_and_data=bytes.fromhex(PAYMASTER[2:]),
    )
    assert sponsored.get_required_prefund() == (1 + 300 + 10) * 2


def test_pack_user_operation_ignores_signature():
    user_operation = UserOperation.from_json(user_operation_json())
    signed = UserOperation.from_json(user_operation_json(signature="0x1234"))

    assert pack_user_operation(user_operation.to_list()) == \
        pack_user_operation(signed.to_list())


def test_pack_user_operation_does_not_modify_input():
    user_operation_list = UserOperation.from_json(
        user_operation_json()).to_list()
    copy = list(user_operation_list)

    pack_user_operation(user_operation_list)

    assert user_operation_list == copy


def test_user_operation_hash_binds_entrypoint_and_chain():
    user_operation_list = UserOperation.from_json(
        user_operation_json()).to_list()
    entrypoint = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

    user_operation_hash = get_user_operation_hash(
        user_operation_list, entrypoint, 1)

    assert user_operation_hash == keccak(
        encode(
            ["bytes32", "address", "uint256"],
            [keccak(pack_user_operation(user_operation_list)), entrypoint, 1],
        )
    )
    assert user_operation_hash != get_user_operation_hash(
        user_operation_list, entrypoint, 5)
    assert user_operation_hash != get_user_operation_hash(
        user_operation_list, PAYMASTER, 1)
