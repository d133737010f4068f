import logging

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError as EthUtilsValidationError
from eth_utils import function_signature_to_4byte_selector, keccak, to_bytes

from sentinel_entrypoint.chain.execution_substrate import \
    Contract, ExecutionSubstrate, Revert
from sentinel_entrypoint.typing import Address
from sentinel_entrypoint.user_operation.call_data import (
    EXECUTE_ABI, EXECUTE_BATCH_ABI, EXECUTE_BATCH_SELECTOR, EXECUTE_SELECTOR)
from sentinel_entrypoint.user_operation.user_operation import (
    UserOperation, get_user_operation_hash)
from sentinel_entrypoint.utils.address import (
    get_create2_address, is_same_address, normalize_address)
from sentinel_entrypoint.utils.encode import encode_error_revert
from sentinel_entrypoint.validation.validation_data import (
    SIG_VALIDATION_FAILED, SIG_VALIDATION_SUCCESS)
from .account import AccountValidator

CREATE_ACCOUNT_SELECTOR = function_signature_to_4byte_selector(
    "createAccount(address,uint256)")
GET_ADDRESS_SELECTOR = function_signature_to_4byte_selector(
    "getAddress(address,uint256)")


def sign_user_operation(
    user_operation: UserOperation,
    private_key: str,
    entrypoint: str,
    chain_id: int,
) -> bytes:
    user_operation_hash = get_user_operation_hash(
        user_operation.to_list(), entrypoint, chain_id)
    signed_message = Account.sign_message(
        encode_defunct(primitive=user_operation_hash), private_key=private_key
    )
    return bytes(signed_message.signature)


class SimpleAccount(Contract, AccountValidator):
    """Minimal smart account controlled by a single ECDSA owner."""
    entrypoint: Address
    owner: Address

    def __init__(
        self,
        chain: ExecutionSubstrate,
        address: Address,
        entrypoint: str,
        owner: str,
    ) -> None:
        super().__init__(chain, address)
        self.entrypoint = normalize_address(entrypoint)
        self.owner = normalize_address(owner)

    def validate_user_op(
        self, user_operation: UserOperation, user_operation_hash: bytes
    ) -> int:
        if len(user_operation.signature) != 65:
            return SIG_VALIDATION_FAILED
        message = encode_defunct(primitive=user_operation_hash)
        try:
            signer = Account.recover_message(
                message, signature=user_operation.signature)
        except (BadSignature, EthUtilsValidationError, ValueError) as excp:
            logging.debug(f"account signature recovery failed: {excp}")
            return SIG_VALIDATION_FAILED
        if not is_same_address(signer, self.owner):
            return SIG_VALIDATION_FAILED
        return SIG_VALIDATION_SUCCESS

    def dispatch(self, caller: Address, value: int, call_data: bytes) -> bytes:
        if len(call_data) == 0:
            return b""  # receive
        selector = call_data[:4]
        if selector == EXECUTE_SELECTOR:
            self._require_from_entrypoint_or_owner(caller)
            target, call_value, payload = self._decode(
                EXECUTE_ABI, call_data)
            return self._call(target, call_value, payload)
        if selector == EXECUTE_BATCH_SELECTOR:
            self._require_from_entrypoint_or_owner(caller)
            targets, values, payloads = self._decode(
                EXECUTE_BATCH_ABI, call_data)
            if len(targets) != len(payloads) or (
                len(values) != 0 and len(values) != len(payloads)
            ):
                raise Revert(encode_error_revert("wrong array lengths"))
            for index, target in enumerate(targets):
                self._call(
                    target,
                    values[index] if len(values) > 0 else 0,
                    payloads[index],
                )
            return b""
        raise Revert()

    def _require_from_entrypoint_or_owner(self, caller: Address) -> None:
        if not (
            is_same_address(caller, self.entrypoint) or
            is_same_address(caller, self.owner)
        ):
            raise Revert(encode_error_revert("account: not Owner or EntryPoint"))

    def _call(self, target: str, value: int, payload: bytes) -> bytes:
        result = self.chain.call(self.address, target, value, payload)
        if not result.success:
            # bubble the callee payload untouched
            raise Revert(result.return_data)
        return result.return_data

    @staticmethod
    def _decode(types: list[str], call_data: bytes) -> tuple:
        try:
            return decode(types, call_data[4:])
        except DecodingError:
            raise Revert()


class SimpleAccountFactory(Contract):
    entrypoint: Address

    def __init__(
        self, chain: ExecutionSubstrate, address: Address, entrypoint: str
    ) -> None:
        super().__init__(chain, address)
        self.entrypoint = normalize_address(entrypoint)

    def get_address(self, owner: str, salt: int) -> Address:
        account_code_hash = keccak(
            encode(["address", "address"], [self.entrypoint, owner]))
        return get_create2_address(
            self.address, salt.to_bytes(32, "big"), account_code_hash)

    def create_account(self, owner: str, salt: int) -> Address:
        address = self.get_address(owner, salt)
        if self.chain.has_code(address):
            return address
        self.chain.deploy(
            SimpleAccount(self.chain, address, self.entrypoint, owner))
        self.chain.emit(
            self.address, "AccountCreated", {"account": address, "owner": owner})
        return address

    def build_init_code(self, owner: str, salt: int) -> bytes:
        return (
            to_bytes(hexstr=self.address) +
            CREATE_ACCOUNT_SELECTOR +
            encode(["address", "uint256"], [owner, salt])
        )

    def dispatch(self, caller: Address, value: int, call_data: bytes) -> bytes:
        selector = call_data[:4]
        if selector not in (CREATE_ACCOUNT_SELECTOR, GET_ADDRESS_SELECTOR):
            raise Revert()
        try:
            owner, salt = decode(["address", "uint256"], call_data[4:])
        except DecodingError:
            raise Revert()
        if selector == CREATE_ACCOUNT_SELECTOR:
            return encode(["address"], [self.create_account(owner, salt)])
        return encode(["address"], [self.get_address(owner, salt)])
