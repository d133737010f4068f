from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from sentinel_entrypoint.typing import Address


class Revert(Exception):
    """Raised by a contract to abort its call with a raw revert payload."""

    def __init__(self, data: bytes = b"") -> None:
        super().__init__(data)
        self.data = data


@dataclass
class CallResult:
    success: bool
    return_data: bytes


@dataclass
class Log:
    address: Address
    event: str
    data: dict[str, Any] = field(default_factory=dict)


class Contract(ABC):
    chain: "ExecutionSubstrate"
    address: Address

    def __init__(self, chain: "ExecutionSubstrate", address: Address) -> None:
        self.chain = chain
        self.address = address

    @abstractmethod
    def dispatch(self, caller: Address, value: int, call_data: bytes) -> bytes:
        pass


class ExecutionSubstrate(ABC):
    """
    The execution environment the EntryPoint runs against: code existence,
    opaque call dispatch, time, chain identity and all-or-nothing snapshots.
    """
    chain_id: int
    timestamp: int

    @abstractmethod
    def deploy(self, contract: Contract) -> Address:
        """Installs code at contract.address, reverting if code is there."""
        pass

    @abstractmethod
    def has_code(self, address: str) -> bool:
        pass

    @abstractmethod
    def get_contract(self, address: str) -> Contract | None:
        pass

    @abstractmethod
    def call(
        self, caller: str, target: str, value: int, call_data: bytes
    ) -> CallResult:
        pass

    @abstractmethod
    def snapshot(self) -> Any:
        pass

    @abstractmethod
    def revert_to(self, snapshot: Any) -> None:
        pass

    @abstractmethod
    def emit(self, address: str, event: str, data: dict[str, Any]) -> None:
        pass
