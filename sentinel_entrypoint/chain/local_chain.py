import copy
import logging
import time
from dataclasses import dataclass
from typing import Any

from sentinel_entrypoint.typing import Address
from sentinel_entrypoint.utils.address import \
    get_create_address, normalize_address
from .execution_substrate import \
    CallResult, Contract, ExecutionSubstrate, Log, Revert


@dataclass
class ChainSnapshot:
    contracts: dict[Address, Contract]
    storage: dict[Address, dict[Any, Any]]
    balances: dict[Address, int]
    deployment_nonces: dict[Address, int]
    logs_length: int


class LocalChain(ExecutionSubstrate):
    """
    In-memory execution substrate.
    Contracts are python objects; a Revert raised anywhere inside a call
    undoes every state change made by that call, nested calls included.
    """
    contracts: dict[Address, Contract]
    storage: dict[Address, dict[Any, Any]]
    balances: dict[Address, int]
    deployment_nonces: dict[Address, int]
    logs: list[Log]

    def __init__(self, chain_id: int, timestamp: int | None = None) -> None:
        self.chain_id = chain_id
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.contracts = {}
        self.storage = {}
        self.balances = {}
        self.deployment_nonces = {}
        self.logs = []

    def next_contract_address(self, deployer: str) -> Address:
        deployer = normalize_address(deployer)
        nonce = self.deployment_nonces.get(deployer, 0)
        self.deployment_nonces[deployer] = nonce + 1
        return get_create_address(deployer, nonce)

    def deploy(self, contract: Contract) -> Address:
        address = normalize_address(contract.address)
        if address in self.contracts:
            raise Revert()
        contract.address = address
        self.contracts[address] = contract
        self.storage.setdefault(address, {})
        logging.debug(f"{type(contract).__name__} deployed at {address}")
        return address

    def has_code(self, address: str) -> bool:
        return normalize_address(address) in self.contracts

    def get_contract(self, address: str) -> Contract | None:
        return self.contracts.get(normalize_address(address))

    def get_balance(self, address: str) -> int:
        return self.balances.get(normalize_address(address), 0)

    def set_balance(self, address: str, balance: int) -> None:
        self.balances[normalize_address(address)] = balance

    def sload(self, address: str, key: Any, default: Any = None) -> Any:
        return self.storage.get(normalize_address(address), {}).get(
            key, default)

    def sstore(self, address: str, key: Any, value: Any) -> None:
        self.storage.setdefault(normalize_address(address), {})[key] = value

    def emit(self, address: str, event: str, data: dict[str, Any]) -> None:
        self.logs.append(Log(normalize_address(address), event, data))

    def snapshot(self) -> ChainSnapshot:
        return ChainSnapshot(
            contracts=dict(self.contracts),
            storage=copy.deepcopy(self.storage),
            balances=dict(self.balances),
            deployment_nonces=dict(self.deployment_nonces),
            logs_length=len(self.logs),
        )

    def revert_to(self, snapshot: ChainSnapshot) -> None:
        self.contracts = dict(snapshot.contracts)
        self.storage = copy.deepcopy(snapshot.storage)
        self.balances = dict(snapshot.balances)
        self.deployment_nonces = dict(snapshot.deployment_nonces)
        del self.logs[snapshot.logs_length:]

    def call(
        self, caller: str, target: str, value: int, call_data: bytes
    ) -> CallResult:
        caller = normalize_address(caller)
        target = normalize_address(target)
        snapshot = self.snapshot()
        try:
            if value > 0:
                self._transfer(caller, target, value)
            contract = self.contracts.get(target)
            if contract is None:
                # plain value transfer to an account without code
                return CallResult(True, b"")
            return_data = contract.dispatch(caller, value, call_data)
            return CallResult(True, return_data)
        except Revert as revert:
            self.revert_to(snapshot)
            return CallResult(False, revert.data)

    def _transfer(self, sender: Address, receiver: Address, value: int) -> None:
        sender_balance = self.balances.get(sender, 0)
        if sender_balance < value:
            raise Revert()
        self.balances[sender] = sender_balance - value
        self.balances[receiver] = self.balances.get(receiver, 0) + value
