import logging
import time
from typing import Any

from sentinel_entrypoint.accounts.simple_account import SimpleAccountFactory
from sentinel_entrypoint.chain.local_chain import LocalChain
from sentinel_entrypoint.entrypoint.entrypoint import EntryPoint
from sentinel_entrypoint.entrypoint.exceptions import \
    ValidationException, ValidationExceptionCode
from sentinel_entrypoint.entrypoint.nonce_authority import \
    InMemoryNonceAuthority
from sentinel_entrypoint.paymaster.signer import sign_paymaster_and_data
from sentinel_entrypoint.paymaster.verifying_paymaster import \
    VerifyingPaymaster
from sentinel_entrypoint.typing import Address, UserOperationHash
from sentinel_entrypoint.user_operation.user_operation import (
    MAX_NONCE_KEY, UserOperation, verify_and_get_address,
    verify_and_get_bytes, verify_and_get_uint)
from sentinel_entrypoint.utils.keys import load_key
from sentinel_entrypoint.validation.validation_data import MAX_UINT48


def verify_and_get_uint48(field_name: str, value: Any) -> int:
    uint_value = verify_and_get_uint(field_name, value)
    if uint_value > MAX_UINT48:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint48 value : {value} in field {field_name}",
        )
    return uint_value


class ExecutionEndpoint:
    """
    Development node: a local chain with a paymaster, an account factory
    and an EntryPoint, driven through JSON-RPC.
    """
    chain: LocalChain
    nonce_authority: InMemoryNonceAuthority
    paymaster: VerifyingPaymaster
    entrypoint: EntryPoint
    account_factory: SimpleAccountFactory
    owner_address: Address
    sponsor_private_key: str
    is_timestamp_pinned: bool

    def __init__(
        self,
        chain_id: int,
        owner_address: Address,
        sponsor_private_key: str,
        whitelist: list[str],
    ):
        self.chain = LocalChain(chain_id)
        self.nonce_authority = InMemoryNonceAuthority()
        self.owner_address = owner_address
        self.sponsor_private_key = sponsor_private_key
        self.is_timestamp_pinned = False

        sponsor_address = load_key(sponsor_private_key).address
        self.paymaster = VerifyingPaymaster(
            self.chain,
            self.chain.next_contract_address(owner_address),
            owner_address,
            sponsor_address,
        )
        self.chain.deploy(self.paymaster)

        self.entrypoint = EntryPoint(
            self.chain,
            self.chain.next_contract_address(owner_address),
            owner_address,
            self.nonce_authority,
            self.paymaster.address,
            whitelist,
        )
        self.chain.deploy(self.entrypoint)

        self.account_factory = SimpleAccountFactory(
            self.chain,
            self.chain.next_contract_address(owner_address),
            self.entrypoint.address,
        )
        self.chain.deploy(self.account_factory)

        logging.info(
            f"EntryPoint: {self.entrypoint.address} - "
            f"Paymaster: {self.paymaster.address} - "
            f"SimpleAccountFactory: {self.account_factory.address}"
        )

    def _advance_block_time(self) -> None:
        if not self.is_timestamp_pinned:
            self.chain.timestamp = int(time.time())

    def _verify_entrypoint(self, entrypoint: Any) -> None:
        entrypoint = verify_and_get_address("entrypoint", entrypoint)
        if entrypoint.lower() != self.entrypoint.address.lower():
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Unsupported entrypoint : {entrypoint}",
            )

    async def rpc_chainId(self) -> str:
        return hex(self.chain.chain_id)

    async def rpc_supportedEntryPoints(self) -> list[str]:
        return [self.entrypoint.address]

    async def rpc_handleOps(
        self, user_operations_json: Any, entrypoint: Any
    ) -> list[UserOperationHash]:
        self._verify_entrypoint(entrypoint)
        if not isinstance(user_operations_json, list):
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid UserOperation list",
            )
        user_operations = [
            UserOperation.from_json(user_operation_json)
            for user_operation_json in user_operations_json
        ]
        self._advance_block_time()
        return self.entrypoint.handle_ops(user_operations)

    async def rpc_getNonce(self, sender: Any, key: Any) -> str:
        nonce_key = verify_and_get_uint("key", key)
        if nonce_key > MAX_NONCE_KEY:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid nonce key : {key}",
            )
        return hex(
            self.entrypoint.get_nonce(
                verify_and_get_address("sender", sender), nonce_key)
        )

    async def rpc_getSenderAddress(self, init_code: Any) -> Address:
        return self.entrypoint.get_sender_address(
            verify_and_get_bytes("initCode", init_code))

    async def rpc_getPaymaster(self) -> Address:
        return self.entrypoint.get_paymaster()

    async def rpc_getSponsor(self) -> Address:
        return self.paymaster.get_sponsor()

    async def rpc_getHash(
        self, user_operation_json: Any, valid_until: Any, valid_after: Any
    ) -> str:
        user_operation = UserOperation.from_json(user_operation_json)
        digest = self.paymaster.get_hash(
            user_operation,
            verify_and_get_uint48("validUntil", valid_until),
            verify_and_get_uint48("validAfter", valid_after),
        )
        return "0x" + digest.hex()

    async def rpc_sponsorUserOperation(
        self, user_operation_json: Any, valid_until: Any, valid_after: Any
    ) -> dict[str, str]:
        user_operation = UserOperation.from_json(user_operation_json)
        paymaster_and_data = sign_paymaster_and_data(
            user_operation,
            self.paymaster.address,
            self.chain.chain_id,
            self.sponsor_private_key,
            verify_and_get_uint48("validUntil", valid_until),
            verify_and_get_uint48("validAfter", valid_after),
        )
        return {"paymasterAndData": "0x" + paymaster_and_data.hex()}

    async def debug_updateWhitelist(self, addresses: Any) -> str:
        if not isinstance(addresses, list):
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid address list",
            )
        self.entrypoint.update_whitelist(
            self.owner_address,
            [
                verify_and_get_address("addresses", address)
                for address in addresses
            ],
        )
        return "ok"

    async def debug_setPaymaster(self, paymaster: Any) -> str:
        self.entrypoint.set_paymaster(
            self.owner_address,
            verify_and_get_address("paymaster", paymaster),
        )
        return "ok"

    async def debug_setSponsor(self, sponsor: Any) -> str:
        self.paymaster.set_sponsor(
            self.owner_address,
            verify_and_get_address("sponsor", sponsor),
        )
        return "ok"

    async def debug_setNonceSequence(
        self, sender: Any, key: Any, sequence: Any
    ) -> str:
        try:
            self.nonce_authority.set_sequence(
                verify_and_get_address("sender", sender),
                verify_and_get_uint("key", key),
                verify_and_get_uint("sequence", sequence),
            )
        except ValueError as excp:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields, str(excp))
        return "ok"

    async def debug_setTimestamp(self, timestamp: Any) -> str:
        self.chain.timestamp = verify_and_get_uint("timestamp", timestamp)
        self.is_timestamp_pinned = True
        return "ok"
