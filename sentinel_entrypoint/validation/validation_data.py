from dataclasses import dataclass

from eth_abi import encode

from sentinel_entrypoint.typing import Address
from sentinel_entrypoint.utils.address import ZERO_ADDRESS

SIG_VALIDATION_SUCCESS = 0
SIG_VALIDATION_FAILED = 1

MAX_UINT48 = 281474976710655  # type(uint48).max

SIG_FAILED_AGGREGATOR = Address("0x0000000000000000000000000000000000000001")


@dataclass(frozen=True)
class ValidationData:
    aggregator: Address
    valid_until: int
    valid_after: int

    @property
    def has_aggregator(self) -> bool:
        # the signature failure marker is also reported in the aggregator slot
        return int(self.aggregator, 16) != 0

    @property
    def sig_failed(self) -> bool:
        return int(self.aggregator, 16) == SIG_VALIDATION_FAILED


def pack_validation_data(
    sig_failed: bool, valid_until: int, valid_after: int
) -> int:
    return (
        (SIG_VALIDATION_FAILED if sig_failed else SIG_VALIDATION_SUCCESS) |
        (valid_until << 160) |
        (valid_after << (160 + 48))
    )


def parse_validation_data(validation_data: int) -> ValidationData:
    if validation_data == 0:
        # the most likely value, unconditional success
        return ValidationData(ZERO_ADDRESS, MAX_UINT48, 0)

    validation_data_bytes = encode(["uint256"], [validation_data])
    valid_after = int(validation_data_bytes[:6].hex(), 16)
    valid_until = int(validation_data_bytes[6:12].hex(), 16)
    if valid_until == 0:
        valid_until = MAX_UINT48
    aggregator = Address("0x" + validation_data_bytes[12:].hex())

    return ValidationData(aggregator, valid_until, valid_after)


def is_within_time_range(validation_data: ValidationData, now: int) -> bool:
    return validation_data.valid_after <= now < validation_data.valid_until
