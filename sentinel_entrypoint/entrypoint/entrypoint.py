import logging
from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from sentinel_entrypoint.accounts.account import AccountValidator
from sentinel_entrypoint.chain.execution_substrate import \
    Contract, ExecutionSubstrate, Revert
from sentinel_entrypoint.paymaster.verifying_paymaster import \
    VerifyingPaymaster
from sentinel_entrypoint.typing import Address, UserOperationHash
from sentinel_entrypoint.user_operation.call_data import (
    decode_call_targets, verify_call_data_selector)
from sentinel_entrypoint.user_operation.user_operation import (
    UserOperation, decode_nonce, get_user_operation_hash)
from sentinel_entrypoint.utils.address import \
    is_same_address, normalize_address
from sentinel_entrypoint.utils.decode import decode_handleops_calldata
from sentinel_entrypoint.utils.encode import (
    GET_NONCE_SELECTOR, HANDLE_OPS_SELECTOR,
    encode_error_revert, encode_failed_op_revert)
from sentinel_entrypoint.validation.validation_data import (
    is_within_time_range, parse_validation_data)
from .exceptions import (
    ExecutionException, ExecutionExceptionCode, FailedOpException,
    OwnershipException, OwnershipExceptionCode,
    ValidationException, ValidationExceptionCode)
from .nonce_authority import NonceAuthority
from .whitelist import Whitelist


@dataclass
class EntryPointConfig:
    owner: Address
    paymaster: Address
    whitelist: Whitelist


class EntryPoint(Contract):
    """
    Validates and dispatches batches of user operations.

    Each operation goes through selector, nonce, call target, account
    creation, account signature and sponsorship checks before its call data
    is dispatched against the sender. Any failure reverts the substrate to
    the state it had before the batch and aborts the whole batch.
    """
    config: EntryPointConfig
    nonce_authority: NonceAuthority

    def __init__(
        self,
        chain: ExecutionSubstrate,
        address: Address,
        owner: str,
        nonce_authority: NonceAuthority,
        paymaster: str,
        whitelist: list[str],
    ) -> None:
        super().__init__(chain, address)
        if not chain.has_code(paymaster):
            raise OwnershipException(
                OwnershipExceptionCode.ContractNotDeployed,
                f"paymaster not deployed at {paymaster}",
            )
        self.config = EntryPointConfig(
            owner=normalize_address(owner),
            paymaster=normalize_address(paymaster),
            whitelist=Whitelist(owner, whitelist),
        )
        self.nonce_authority = nonce_authority
        self._entered = False

    @property
    def owner(self) -> Address:
        return self.config.owner

    def handle_ops(
        self, user_operations: list[UserOperation]
    ) -> list[UserOperationHash]:
        if self._entered:
            raise ValidationException(
                ValidationExceptionCode.Reentrancy,
                "ReentrancyGuard: reentrant call",
            )
        self._entered = True
        try:
            return self._handle_ops(user_operations)
        finally:
            self._entered = False

    def _handle_ops(
        self, user_operations: list[UserOperation]
    ) -> list[UserOperationHash]:
        if len(user_operations) == 0:
            raise ValidationException(
                ValidationExceptionCode.EmptyBatch,
                "no user operations",
            )

        snapshot = self.chain.snapshot()
        user_operation_hashes = []
        try:
            for op_index, user_operation in enumerate(user_operations):
                user_operation_hashes.append(
                    self._handle_op(op_index, user_operation))
        except Exception:
            self.chain.revert_to(snapshot)
            raise

        logging.info(f"handled a batch of {len(user_operations)} user operations")
        return user_operation_hashes

    def _handle_op(
        self, op_index: int, user_operation: UserOperation
    ) -> UserOperationHash:
        try:
            verify_call_data_selector(user_operation.call_data)
            key, sequence = decode_nonce(user_operation.nonce)
            self._validate_nonce(user_operation, key)
            self._validate_call_targets(user_operation)
            self._create_sender_if_needed(user_operation, sequence)
            user_operation_hash = get_user_operation_hash(
                user_operation.to_list(), self.address, self.chain.chain_id)
            self._validate_account_signature(
                user_operation, user_operation_hash)
            self._validate_sponsorship(user_operation, user_operation_hash)
        except ValidationException as excp:
            logging.warning(
                f"user operation {op_index} from "
                f"{user_operation.sender_address} failed: {excp.message}"
            )
            raise FailedOpException(op_index, excp.exception_code, excp.message)

        self._execute(op_index, user_operation)

        self.chain.emit(
            self.address,
            "UserOperationEvent",
            {
                "userOpHash": "0x" + user_operation_hash.hex(),
                "sender": user_operation.sender_address,
                "paymaster": user_operation.paymaster_address,
                "nonce": user_operation.nonce,
                "success": True,
            },
        )
        return UserOperationHash("0x" + user_operation_hash.hex())

    def _validate_nonce(self, user_operation: UserOperation, key: int) -> None:
        expected_nonce = self.nonce_authority.get_nonce(
            user_operation.sender_address, key)
        logging.debug(
            f"nonce {user_operation.nonce}, expected {expected_nonce}")
        if expected_nonce != user_operation.nonce:
            raise ValidationException(
                ValidationExceptionCode.InvalidNonce,
                "AA25 invalid account nonce",
            )

    def _validate_call_targets(self, user_operation: UserOperation) -> None:
        for target in decode_call_targets(user_operation.call_data):
            if is_same_address(target, user_operation.sender_address):
                continue
            if not self.config.whitelist.is_whitelisted(target):
                raise ValidationException(
                    ValidationExceptionCode.TargetNotWhitelisted,
                    f"target {target} not whitelisted",
                )

    def _create_sender_if_needed(
        self, user_operation: UserOperation, sequence: int
    ) -> None:
        sender = user_operation.sender_address
        if sequence != 0 or self.chain.has_code(sender):
            return
        if user_operation.factory_address is None:
            raise ValidationException(
                ValidationExceptionCode.AccountNotDeployed,
                "AA20 account not deployed",
            )

        created_address = self._call_factory(user_operation.init_code)
        if not is_same_address(created_address, sender):
            raise ValidationException(
                ValidationExceptionCode.SenderAddressMismatch,
                "AA14 initCode must return sender",
            )
        if not self.chain.has_code(sender):
            raise ValidationException(
                ValidationExceptionCode.AccountNotDeployed,
                "AA15 initCode must create sender",
            )
        logging.debug(f"account {sender} created")

    def _call_factory(self, init_code: bytes) -> Address:
        factory = "0x" + init_code[:20].hex()
        if len(init_code) <= 20 or not self.chain.has_code(factory):
            raise ValidationException(
                ValidationExceptionCode.FactoryNotDeployed,
                "AA13 factory not deployed",
            )
        result = self.chain.call(self.address, factory, 0, init_code[20:])
        if not result.success:
            raise ValidationException(
                ValidationExceptionCode.InitCodeFailed,
                "AA13 initCode failed",
            )
        try:
            (created_address,) = decode(["address"], result.return_data)
        except DecodingError:
            raise ValidationException(
                ValidationExceptionCode.InitCodeFailed,
                "AA13 initCode failed",
            )
        return Address(created_address)

    def _validate_account_signature(
        self, user_operation: UserOperation, user_operation_hash: bytes
    ) -> None:
        account = self.chain.get_contract(user_operation.sender_address)
        if account is None:
            raise ValidationException(
                ValidationExceptionCode.AccountNotDeployed,
                "AA20 account not deployed",
            )
        if not isinstance(account, AccountValidator):
            raise ValidationException(
                ValidationExceptionCode.InvalidSignature,
                "AA23 account can not validate user operations",
            )
        validation_data = parse_validation_data(
            account.validate_user_op(user_operation, user_operation_hash))
        if validation_data.has_aggregator:
            raise ValidationException(
                ValidationExceptionCode.InvalidSignature,
                "AA24 signature error",
            )
        if not is_within_time_range(validation_data, self.chain.timestamp):
            raise ValidationException(
                ValidationExceptionCode.ExpiresShortly,
                "AA22 expired or not due",
            )

    def _validate_sponsorship(
        self, user_operation: UserOperation, user_operation_hash: bytes
    ) -> None:
        paymaster_address = user_operation.paymaster_address
        if (
            paymaster_address is None or
            not self.chain.has_code(paymaster_address)
        ):
            raise ValidationException(
                ValidationExceptionCode.PaymasterNotDeployed,
                "AA30 paymaster not deployed",
            )
        if not is_same_address(paymaster_address, self.config.paymaster):
            raise ValidationException(
                ValidationExceptionCode.InvalidPaymaster,
                f"invalid paymaster {paymaster_address}",
            )
        paymaster = self.chain.get_contract(paymaster_address)
        if not isinstance(paymaster, VerifyingPaymaster):
            raise ValidationException(
                ValidationExceptionCode.InvalidPaymaster,
                f"invalid paymaster {paymaster_address}",
            )

        _, validation_data_int = paymaster.validate_paymaster_user_op(
            user_operation,
            user_operation_hash,
            user_operation.get_required_prefund(),
        )
        validation_data = parse_validation_data(validation_data_int)
        if validation_data.has_aggregator:
            raise ValidationException(
                ValidationExceptionCode.PaymasterSignatureError,
                "AA34 signature error",
            )
        if not is_within_time_range(validation_data, self.chain.timestamp):
            raise ValidationException(
                ValidationExceptionCode.ExpiresShortly,
                "AA32 paymaster expired or not due",
            )

    def _execute(self, op_index: int, user_operation: UserOperation) -> None:
        result = self.chain.call(
            self.address,
            user_operation.sender_address,
            0,
            user_operation.call_data,
        )
        if not result.success:
            logging.warning(
                f"user operation {op_index} from "
                f"{user_operation.sender_address} reverted: "
                f"0x{result.return_data.hex()}"
            )
            raise ExecutionException(
                ExecutionExceptionCode.UserOperationReverted,
                f"user operation {op_index} reverted",
                op_index,
                result.return_data,
            )

    def get_nonce(self, sender: str, key: int) -> int:
        return self.nonce_authority.get_nonce(sender, key)

    def increment_nonce(self, key: int) -> None:
        """Nonce sequences are advanced by the nonce authority, never here."""
        pass

    def get_sender_address(self, init_code: bytes) -> Address:
        snapshot = self.chain.snapshot()
        try:
            return self._call_factory(init_code)
        finally:
            self.chain.revert_to(snapshot)

    def get_paymaster(self) -> Address:
        return self.config.paymaster

    def set_paymaster(self, caller: str, paymaster: str) -> None:
        self._require_owner(caller)
        if not self.chain.has_code(paymaster):
            raise OwnershipException(
                OwnershipExceptionCode.ContractNotDeployed,
                f"paymaster not deployed at {paymaster}",
            )
        self.config.paymaster = normalize_address(paymaster)
        logging.info(f"paymaster set to {self.config.paymaster}")

    def update_whitelist(self, caller: str, addresses: list[str]) -> None:
        self.config.whitelist.update_whitelist(caller, addresses)

    def _require_owner(self, caller: str) -> None:
        if not is_same_address(caller, self.config.owner):
            raise OwnershipException(
                OwnershipExceptionCode.NotOwner,
                "Ownable: caller is not the owner",
            )

    def dispatch(self, caller: Address, value: int, call_data: bytes) -> bytes:
        selector = call_data[:4]
        if selector == GET_NONCE_SELECTOR:
            try:
                sender, key = decode(["address", "uint192"], call_data[4:])
            except DecodingError:
                raise Revert()
            return encode(["uint256"], [self.get_nonce(sender, key)])

        if selector != HANDLE_OPS_SELECTOR:
            raise Revert()
        try:
            user_operations = [
                UserOperation.from_list(user_operation_list)
                for user_operation_list in
                decode_handleops_calldata(call_data)
            ]
        except DecodingError:
            raise Revert()
        try:
            self.handle_ops(user_operations)
        except FailedOpException as excp:
            raise Revert(encode_failed_op_revert(excp.op_index, excp.reason))
        except ValidationException as excp:
            raise Revert(encode_error_revert(excp.message))
        except ExecutionException as excp:
            raise Revert(excp.revert_data)
        return b""
