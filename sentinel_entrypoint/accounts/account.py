from abc import ABC, abstractmethod

from sentinel_entrypoint.user_operation.user_operation import UserOperation


class AccountValidator(ABC):
    """
    Capability every sender account exposes to the EntryPoint.
    validate_user_op returns ERC-4337 validation data, 0 meaning the
    signature authorizes the request hash.
    """

    @abstractmethod
    def validate_user_op(
        self, user_operation: UserOperation, user_operation_hash: bytes
    ) -> int:
        pass
