from dataclasses import dataclass
from enum import Enum


class ValidationExceptionCode(Enum):
    InvalidFields = -32602
    SimulateValidation = -32500
    ExpiresShortly = -32503
    InvalidSignature = -32507
    InvalidSelector = -32510
    EmptyBatch = -32511
    InvalidNonce = -32512
    InvalidCallData = -32513
    TargetNotWhitelisted = -32514
    FactoryNotDeployed = -32515
    InitCodeFailed = -32516
    SenderAddressMismatch = -32517
    AccountNotDeployed = -32518
    PaymasterNotDeployed = -32519
    InvalidPaymaster = -32520
    InvalidPaymasterSignatureLength = -32522
    PaymasterExpiredOrNotDue = -32523
    PaymasterSignatureError = -32524
    Reentrancy = -32525


@dataclass
class ValidationException(Exception):
    exception_code: ValidationExceptionCode
    message: str


@dataclass
class FailedOpException(Exception):
    op_index: int
    exception_code: ValidationExceptionCode
    reason: str

    @property
    def message(self) -> str:
        return f"FailedOp({self.op_index}, {self.reason})"


class ExecutionExceptionCode(Enum):
    UserOperationReverted = -32521


@dataclass
class ExecutionException(Exception):
    exception_code: ExecutionExceptionCode
    message: str
    op_index: int = 0
    # raw revert payload of the dispatched call, never re-encoded
    revert_data: bytes = b""


class OwnershipExceptionCode(Enum):
    NotOwner = -32530
    ContractNotDeployed = -32531


@dataclass
class OwnershipException(Exception):
    exception_code: OwnershipExceptionCode
    message: str
