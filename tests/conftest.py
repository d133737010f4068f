from dataclasses import dataclass, replace

import pytest
from eth_account import Account

from sentinel_entrypoint.accounts.simple_account import (
    SimpleAccount, SimpleAccountFactory, sign_user_operation)
from sentinel_entrypoint.chain.execution_substrate import Contract, Revert
from sentinel_entrypoint.chain.local_chain import LocalChain
from sentinel_entrypoint.entrypoint.entrypoint import EntryPoint
from sentinel_entrypoint.entrypoint.nonce_authority import \
    InMemoryNonceAuthority
from sentinel_entrypoint.paymaster.signer import sign_paymaster_and_data
from sentinel_entrypoint.paymaster.verifying_paymaster import \
    VerifyingPaymaster
from sentinel_entrypoint.user_operation.call_data import \
    encode_execute_call_data
from sentinel_entrypoint.user_operation.user_operation import UserOperation
from sentinel_entrypoint.utils.encode import (
    encode_error_revert, encode_handleops_calldata)

CHAIN_ID = 1337
NOW = 1_700_000_000

OWNER_KEY = "0x" + "11" * 32
SPONSOR_KEY = "0x" + "22" * 32
ACCOUNT_OWNER_KEY = "0x" + "33" * 32
STRANGER_KEY = "0x" + "44" * 32

OWNER = Account.from_key(OWNER_KEY).address
SPONSOR = Account.from_key(SPONSOR_KEY).address
ACCOUNT_OWNER = Account.from_key(ACCOUNT_OWNER_KEY).address
STRANGER = Account.from_key(STRANGER_KEY).address

REVERTING_PAYLOAD = b"boom"
REENTER_PAYLOAD = b"reenter"


class Counter(Contract):
    """Call target recording every call it receives."""

    def __init__(self, chain, address):
        super().__init__(chain, address)
        self.calls = []
        self.reentry_entrypoint = None
        self.reentry_operation = None

    def dispatch(self, caller, value, call_data):
        if call_data == REVERTING_PAYLOAD:
            raise Revert(encode_error_revert("counter: boom"))
        if call_data == REENTER_PAYLOAD:
            entrypoint = self.chain.get_contract(self.reentry_entrypoint)
            result = self.chain.call(
                self.address,
                entrypoint.address,
                0,
                encode_handleops_calldata([self.reentry_operation.to_list()]),
            )
            if not result.success:
                raise Revert(result.return_data)
        count = self.chain.sload(self.address, "count", 0)
        self.chain.sstore(self.address, "count", count + 1)
        self.calls.append((caller, value, call_data))
        return b""


@dataclass
class DeployedSystem:
    chain: LocalChain
    nonce_authority: InMemoryNonceAuthority
    paymaster: VerifyingPaymaster
    entrypoint: EntryPoint
    factory: SimpleAccountFactory
    account: SimpleAccount
    target: Counter
    other_target: Counter

    def build_user_operation(
        self,
        call_data=None,
        sender=None,
        nonce=0,
        init_code=b"",
        valid_until=NOW + 3600,
        valid_after=NOW - 3600,
        sponsor_key=SPONSOR_KEY,
        account_key=ACCOUNT_OWNER_KEY,
        paymaster_address=None,
    ) -> UserOperation:
        """
        Builds an operation sponsored by sponsor_key and signed by
        account_key. The sponsor signs first since the account signs over
        paymasterAndData.
        """
        if call_data is None:
            call_data = encode_execute_call_data(
                self.target.address, 0, b"\x01")
        if paymaster_address is None:
            paymaster_address = self.paymaster.address
        user_operation = UserOperation(
            sender_address=sender or self.account.address,
            nonce=nonce,
            init_code=init_code,
            call_data=call_data,
            call_gas_limit=100_000,
            verification_gas_limit=200_000,
            pre_verification_gas=50_000,
            max_fee_per_gas=10,
            max_priority_fee_per_gas=1,
        )
        user_operation = replace(
            user_operation,
            paymaster_and_data=sign_paymaster_and_data(
                user_operation,
                paymaster_address,
                self.chain.chain_id,
                sponsor_key,
                valid_until,
                valid_after,
            ),
        )
        return self.sign(user_operation, account_key)

    def sign(self, user_operation, account_key=ACCOUNT_OWNER_KEY):
        return replace(
            user_operation,
            signature=sign_user_operation(
                user_operation,
                account_key,
                self.entrypoint.address,
                self.chain.chain_id,
            ),
        )


@pytest.fixture
def chain():
    return LocalChain(CHAIN_ID, timestamp=NOW)


@pytest.fixture
def nonce_authority():
    return InMemoryNonceAuthority()


@pytest.fixture
def system(chain, nonce_authority):
    paymaster = VerifyingPaymaster(
        chain, chain.next_contract_address(OWNER), OWNER, SPONSOR)
    chain.deploy(paymaster)

    target = Counter(chain, chain.next_contract_address(OWNER))
    chain.deploy(target)
    other_target = Counter(chain, chain.next_contract_address(OWNER))
    chain.deploy(other_target)

    entrypoint = EntryPoint(
        chain,
        chain.next_contract_address(OWNER),
        OWNER,
        nonce_authority,
        paymaster.address,
        [target.address],
    )
    chain.deploy(entrypoint)
    target.reentry_entrypoint = entrypoint.address

    factory = SimpleAccountFactory(
        chain, chain.next_contract_address(OWNER), entrypoint.address)
    chain.deploy(factory)

    account_address = factory.create_account(ACCOUNT_OWNER, 0)
    account = chain.get_contract(account_address)

    return DeployedSystem(
        chain=chain,
        nonce_authority=nonce_authority,
        paymaster=paymaster,
        entrypoint=entrypoint,
        factory=factory,
        account=account,
        target=target,
        other_target=other_target,
    )
