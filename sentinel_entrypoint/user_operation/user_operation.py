import re
from dataclasses import dataclass
from typing import Any

from eth_abi import encode
from eth_utils import keccak

from sentinel_entrypoint.entrypoint.exceptions import \
    ValidationException, ValidationExceptionCode
from sentinel_entrypoint.typing import Address

NONCE_KEY_BITS = 192
NONCE_SEQUENCE_BITS = 64
NONCE_SEQUENCE_MASK = (1 << NONCE_SEQUENCE_BITS) - 1
MAX_NONCE_KEY = (1 << NONCE_KEY_BITS) - 1
MAX_UINT256 = (1 << 256) - 1

USER_OPERATION_FIELDS = [
    "sender",
    "nonce",
    "initCode",
    "callData",
    "callGasLimit",
    "verificationGasLimit",
    "preVerificationGas",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "paymasterAndData",
    "signature",
]


@dataclass(frozen=True)
class UserOperation:
    sender_address: Address
    nonce: int
    init_code: bytes = b""
    call_data: bytes = b""
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    @classmethod
    def from_json(
        cls, json_request_dict: dict[str, Any]
    ) -> "UserOperation":
        if not isinstance(json_request_dict, dict):
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid UserOperation",
            )
        if len(json_request_dict) != len(USER_OPERATION_FIELDS):
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid UserOperation",
            )
        cls.verify_fields_exist(json_request_dict)

        return cls(
            sender_address=verify_and_get_address(
                "sender", json_request_dict["sender"]),
            nonce=verify_and_get_uint(
                "nonce", json_request_dict["nonce"]),
            init_code=verify_and_get_bytes(
                "initCode", json_request_dict["initCode"]),
            call_data=verify_and_get_bytes(
                "callData", json_request_dict["callData"]),
            call_gas_limit=verify_and_get_uint(
                "callGasLimit", json_request_dict["callGasLimit"]),
            verification_gas_limit=verify_and_get_uint(
                "verificationGasLimit",
                json_request_dict["verificationGasLimit"]),
            pre_verification_gas=verify_and_get_uint(
                "preVerificationGas",
                json_request_dict["preVerificationGas"]),
            max_fee_per_gas=verify_and_get_uint(
                "maxFeePerGas", json_request_dict["maxFeePerGas"]),
            max_priority_fee_per_gas=verify_and_get_uint(
                "maxPriorityFeePerGas",
                json_request_dict["maxPriorityFeePerGas"]),
            paymaster_and_data=verify_and_get_bytes(
                "paymasterAndData", json_request_dict["paymasterAndData"]),
            signature=verify_and_get_bytes(
                "signature", json_request_dict["signature"]),
        )

    @staticmethod
    def verify_fields_exist(json_request_dict: dict[str, Any]) -> None:
        for field in USER_OPERATION_FIELDS:
            if field not in json_request_dict:
                raise ValidationException(
                    ValidationExceptionCode.InvalidFields,
                    f"UserOperation missing {field} field",
                )

    @classmethod
    def from_list(cls, user_operation_list: list | tuple) -> "UserOperation":
        return cls(*user_operation_list)

    def get_user_operation_json(self) -> dict[str, Address | str]:
        return {
            "sender": self.sender_address,
            "nonce": hex(self.nonce),
            "initCode": "0x" + self.init_code.hex(),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymasterAndData": "0x" + self.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }

    def to_list(self) -> list[Address | int | bytes]:
        return [
            self.sender_address,
            self.nonce,
            self.init_code,
            self.call_data,
            self.call_gas_limit,
            self.verification_gas_limit,
            self.pre_verification_gas,
            self.max_fee_per_gas,
            self.max_priority_fee_per_gas,
            self.paymaster_and_data,
            self.signature,
        ]

    @property
    def nonce_key(self) -> int:
        return decode_nonce(self.nonce)[0]

    @property
    def nonce_sequence(self) -> int:
        return decode_nonce(self.nonce)[1]

    @property
    def call_selector(self) -> bytes | None:
        if len(self.call_data) < 4:
            return None
        return self.call_data[:4]

    @property
    def factory_address(self) -> Address | None:
        if len(self.init_code) > 20:
            return Address("0x" + self.init_code[:20].hex())
        return None

    @property
    def paymaster_address(self) -> Address | None:
        if len(self.paymaster_and_data) >= 20:
            return Address("0x" + self.paymaster_and_data[:20].hex())
        return None

    def get_required_prefund(self) -> int:
        # the paymaster gets two extra verification gas limits for postOp
        multiplier = 3 if self.paymaster_address is not None else 1
        gas = (
            self.pre_verification_gas +
            self.verification_gas_limit * multiplier +
            self.call_gas_limit
        )
        return gas * self.max_fee_per_gas


def decode_nonce(nonce: int) -> tuple[int, int]:
    return nonce >> NONCE_SEQUENCE_BITS, nonce & NONCE_SEQUENCE_MASK


def encode_nonce(key: int, sequence: int) -> int:
    if key < 0 or key > MAX_NONCE_KEY:
        raise ValueError(f"nonce key out of range: {key}")
    if sequence < 0 or sequence > NONCE_SEQUENCE_MASK:
        raise ValueError(f"nonce sequence out of range: {sequence}")
    return (key << NONCE_SEQUENCE_BITS) | sequence


def get_user_operation_hash(
    user_operation_list: list, entrypoint_addr: str, chain_id: int
) -> bytes:
    packed_user_operation = keccak(
        pack_user_operation(user_operation_list)
    )

    encoded_user_operation_hash = encode(
        ["(bytes32,address,uint256)"],
        [[packed_user_operation, entrypoint_addr, chain_id]],
    )
    return keccak(encoded_user_operation_hash)


def pack_user_operation(user_operation_list: list) -> bytes:
    hashed_user_operation_list = list(user_operation_list[:-1])
    hashed_user_operation_list[2] = keccak(user_operation_list[2])
    hashed_user_operation_list[3] = keccak(user_operation_list[3])
    hashed_user_operation_list[9] = keccak(user_operation_list[9])

    return encode(
        [
            "address",
            "uint256",
            "bytes32",
            "bytes32",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "bytes32",
        ],
        hashed_user_operation_list,
    )


def verify_and_get_address(field_name: str, value: Any) -> Address:
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if isinstance(value, str) and re.match(address_pattern, value) is not None:
        return Address(value)
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid address value : {value} in field {field_name}",
        )


def verify_and_get_uint(field_name: str, value: Any) -> int:
    if value is None:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint hex value in field {field_name}",
        )

    if value == "0x":
        return 0
    elif isinstance(value, str) and value[:2] == "0x":
        try:
            uint_value = int(value, 16)
        except ValueError:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid uint hex value : {value} in field {field_name}",
            )
        if uint_value > MAX_UINT256:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Value out of uint256 range : {value} in field {field_name}",
            )
        return uint_value
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint hex value : {value} in field {field_name}",
        )


def verify_and_get_bytes(field_name: str, value: Any) -> bytes:
    if value is None:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid bytes hex value in field {field_name}",
        )

    if isinstance(value, str) and value[:2] == "0x":
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid bytes hex value : {value} in field {field_name}",
            )
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid bytes hex value : {value} in field {field_name}",
        )

